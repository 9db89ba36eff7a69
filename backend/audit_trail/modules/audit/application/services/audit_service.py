"""Audit service.

This module provides the manual logging entry point for changes that do not
go through the ORM, for example a bulk import or a status change performed
by an external system.
"""

from collections.abc import Mapping
from typing import Any

from audit_trail.core.logging import get_logger
from audit_trail.modules.audit.application.observers.change_observer import (
    ChangeObserver,
)
from audit_trail.modules.audit.domain.entities.pending_change import PendingKey
from audit_trail.modules.audit.domain.enums.audit_enums import ActionKind
from audit_trail.modules.audit.domain.value_objects.changes import (
    normalize_relation_diff,
)

logger = get_logger(__name__)


class AuditService:
    """
    Application service for manual audit logging.

    Entries logged here go through the aggregator of the current scope, so a
    manual log and ORM notifications for the same entity within one
    transaction still produce a single entry.
    """

    def __init__(self, observer: ChangeObserver):
        self.observer = observer

    def log(
        self,
        entity: Any,
        action: ActionKind | str | int,
        old: Mapping[str, Any] | None = None,
        new: Mapping[str, Any] | None = None,
        relations: Mapping[str, Any] | None = None,
        actor: Any = None,
        metadata: Mapping[str, Any] | None = None,
        sensitive_fields: tuple[str, ...] = (),
    ) -> PendingKey | None:
        """
        Record a change explicitly.

        Args:
            entity: Auditable entity the change applies to
            action: Action member, integer value or label
            old: Attribute values before the change
            new: Attribute values after the change
            relations: ``{relation: {"added": [...], "removed": [...]}}``
            actor: Explicit actor, overriding the resolved one
            metadata: Extra metadata, overriding the request defaults
            sensitive_fields: Extra sensitive patterns for this change

        Returns:
            The pending key, or None when auditing is switched off for the
            entity type

        Raises:
            InvalidActionError: If the action cannot be parsed
            NoActiveScopeError: If no audit scope is active
        """
        action = ActionKind.parse(action)
        entity_type, config = self.observer.config_of(entity)
        if not self.observer.gate.allows(entity_type, config):
            logger.debug("Manual audit log suppressed", entity_type=entity_type)
            return None

        attributes = self.observer.diff_for(
            config, old or {}, new or {}, extra_sensitive=sensitive_fields
        )

        aggregator = self.observer.scope_provider().aggregator
        return aggregator.register_change(
            entity,
            action,
            attributes,
            normalize_relation_diff(relations),
            actor=actor,
            metadata=metadata,
        )


__all__ = ["AuditService"]
