"""Per-entity-type audit configuration registry."""

from dataclasses import replace
from typing import Any

from audit_trail.core.config import EntityAuditConfig
from audit_trail.core.logging import get_logger
from audit_trail.modules.audit.domain.errors.audit_errors import (
    AuditConfigurationError,
)

logger = get_logger(__name__)


class AuditRegistry:
    """
    Holds the EntityAuditConfig of every audited entity type.

    Types that were never registered are audited with the default
    configuration. Relation and parent tables are cross-checked by
    ``resolve()``, which is meant to run once at startup.
    """

    def __init__(self, default_config: EntityAuditConfig | None = None):
        self.default_config = default_config or EntityAuditConfig()
        self._configs: dict[str, EntityAuditConfig] = {}
        self._resolved = False

    def register(
        self,
        entity_type: str,
        config: EntityAuditConfig | None = None,
        **overrides: Any,
    ) -> EntityAuditConfig:
        """
        Register (or replace) the configuration of an entity type.

        Args:
            entity_type: Type tag returned by ``audit_identity()``
            config: Full configuration, the default one when omitted
            **overrides: Individual EntityAuditConfig fields to override
        """
        if not entity_type:
            raise AuditConfigurationError("Entity type tag must not be empty")

        resolved = replace(config or self.default_config, **overrides)
        self._configs[entity_type] = resolved
        self._resolved = False
        return resolved

    def config_for(self, entity_type: str) -> EntityAuditConfig:
        return self._configs.get(entity_type, self.default_config)

    def is_registered(self, entity_type: str) -> bool:
        return entity_type in self._configs

    @property
    def entity_types(self) -> list[str]:
        return sorted(self._configs)

    def related_type(self, entity_type: str, relation: str) -> str | None:
        """Type tag of the entities held by ``relation``, when declared."""
        return self.config_for(entity_type).relations.get(relation)

    def resolve(self) -> dict[str, EntityAuditConfig]:
        """
        Validate relation and parent tables.

        Returns:
            Entity type tag -> configuration

        Raises:
            AuditConfigurationError: If a relation targets an unknown entity
                type or a parent entry has no inverse relation name
        """
        for entity_type, config in self._configs.items():
            for relation, related_type in config.relations.items():
                if not related_type or related_type not in self._configs:
                    raise AuditConfigurationError(
                        f"Relation {entity_type}.{relation} targets unknown "
                        f"entity type {related_type!r}",
                        entity_type=entity_type,
                    )

            for attribute, inverse in config.parents.items():
                if not attribute or not inverse:
                    raise AuditConfigurationError(
                        f"Parent relation {entity_type}.{attribute or '?'} "
                        "has no inverse relation name",
                        entity_type=entity_type,
                    )

        self._resolved = True
        logger.info("Audit registry resolved", entity_types=self.entity_types)
        return dict(self._configs)

    @property
    def is_resolved(self) -> bool:
        return self._resolved


__all__ = ["AuditRegistry"]
