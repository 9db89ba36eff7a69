"""Change observer.

Entry point for lifecycle notifications. The observer applies the gate and
the per-type configuration, computes the attribute diff and hands the result
to the aggregator of the active audit scope. Child create/delete
notifications are also propagated to the configured parents as relation
changes.
"""

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from audit_trail.core.config import TIMESTAMP_ATTRIBUTES, EntityAuditConfig
from audit_trail.core.logging import get_logger
from audit_trail.modules.audit.application.services.audit_gate import (
    AuditGate,
    default_gate,
)
from audit_trail.modules.audit.application.services.audit_registry import (
    AuditRegistry,
)
from audit_trail.modules.audit.application.services.audit_scope import (
    AuditScope,
    require_scope,
)
from audit_trail.modules.audit.domain.entities.pending_change import PendingKey
from audit_trail.modules.audit.domain.enums.audit_enums import ActionKind
from audit_trail.modules.audit.domain.errors.audit_errors import (
    MissingEntityIdentityError,
)
from audit_trail.modules.audit.domain.services.diff_engine import compute_diff
from audit_trail.modules.audit.domain.services.sensitivity import SensitivityMatcher
from audit_trail.modules.audit.domain.value_objects.changes import RelationChange
from audit_trail.modules.audit.domain.value_objects.relation_ref import RelationRef

logger = get_logger(__name__)


class ChangeObserver:
    """
    Translates lifecycle notifications into pending changes.

    Every ``on_*`` method returns the pending key the notification was merged
    into, or None when the gate or the type configuration filtered it out.
    """

    def __init__(
        self,
        registry: AuditRegistry | None = None,
        matcher: SensitivityMatcher | None = None,
        gate: AuditGate | None = None,
        scope_provider: Callable[[], AuditScope] | None = None,
        excluded_attributes: Iterable[str] = TIMESTAMP_ATTRIBUTES,
    ):
        """
        Initialize the observer.

        Args:
            registry: Per-type configuration, defaults for unregistered types
            matcher: Sensitivity matcher holding the global patterns
            gate: Runtime switches, the process-wide gate by default
            scope_provider: Returns the active scope, raises when none is
            excluded_attributes: Attributes excluded for every type
        """
        self.registry = registry or AuditRegistry()
        self.matcher = matcher or SensitivityMatcher(())
        self.gate = gate or default_gate
        self.scope_provider = scope_provider or require_scope
        self.excluded_attributes = tuple(excluded_attributes)

    # Lifecycle notifications

    def on_created(self, entity: Any) -> PendingKey | None:
        entity_type, config = self.config_of(entity)
        if not self.gate.allows(entity_type, config, ActionKind.CREATED):
            return None

        attributes = self.diff_for(config, {}, entity.audit_snapshot())
        key = self._register(entity, ActionKind.CREATED, attributes)
        self._propagate_to_parents(entity, config, ActionKind.CREATED)
        return key

    def on_updated(
        self,
        entity: Any,
        original: Mapping[str, Any],
        changed: Mapping[str, Any],
    ) -> PendingKey | None:
        """
        Record an update.

        Args:
            entity: The updated entity
            original: Attribute values before the update
            changed: Changed attributes with their new values
        """
        entity_type, config = self.config_of(entity)
        if not self.gate.allows(entity_type, config, ActionKind.UPDATED):
            return None

        old = {name: original.get(name) for name in changed}
        attributes = self.diff_for(config, old, changed)
        if not attributes:
            return None

        return self._register(entity, ActionKind.UPDATED, attributes)

    def on_deleted(
        self,
        entity: Any,
        final: Mapping[str, Any] | None = None,
    ) -> PendingKey | None:
        entity_type, config = self.config_of(entity)
        if not self.gate.allows(entity_type, config):
            return None

        # Parents learn about the removal even when deletes are not logged
        self._propagate_to_parents(entity, config, ActionKind.DELETED)

        if not config.should_log(ActionKind.DELETED.slug):
            return None

        if final is None:
            final = entity.audit_snapshot()
        attributes = self.diff_for(config, final, {})
        return self._register(entity, ActionKind.DELETED, attributes)

    def on_restored(
        self,
        entity: Any,
        attributes: Mapping[str, Any] | None = None,
    ) -> PendingKey | None:
        entity_type, config = self.config_of(entity)
        if not self.gate.allows(entity_type, config, ActionKind.RESTORED):
            return None

        if attributes is None:
            attributes = entity.audit_snapshot()
        diff = self.diff_for(config, {}, attributes)
        return self._register(entity, ActionKind.RESTORED, diff)

    def on_relation_changed(
        self,
        entity: Any,
        relation: str,
        added: Iterable[Any] = (),
        removed: Iterable[Any] = (),
    ) -> PendingKey | None:
        """
        Record members attached to or detached from a relation.

        Members may be RelationRefs, auditable entities, ``{"id", "name",
        "type"}`` mappings or bare ids.
        """
        entity_type, config = self.config_of(entity)
        if not self.gate.allows(entity_type, config, ActionKind.RELATIONS_UPDATED):
            return None

        related_type = config.relations.get(relation)
        change = RelationChange(
            added=self._refs(added, related_type),
            removed=self._refs(removed, related_type),
        )
        if change.is_empty:
            return None

        return self._register(
            entity, ActionKind.RELATIONS_UPDATED, relations={relation: change}
        )

    def config_of(self, entity: Any) -> tuple[str, EntityAuditConfig]:
        identity = getattr(entity, "audit_identity", None)
        if not callable(identity):
            raise MissingEntityIdentityError(entity, "no audit_identity()")
        entity_type, _ = identity()
        return entity_type, self.registry.config_for(entity_type)

    def diff_for(
        self,
        config: EntityAuditConfig,
        old: Mapping[str, Any],
        new: Mapping[str, Any],
        extra_sensitive: Iterable[str] = (),
    ) -> dict:
        """Diff two snapshots with the exclusions and sensitive fields of a type."""
        return compute_diff(
            old,
            new,
            excluded=self.excluded_attributes + tuple(config.excluded_attributes),
            sensitive=tuple(config.sensitive_fields) + tuple(extra_sensitive),
            matcher=self.matcher,
        )

    def _register(
        self,
        entity: Any,
        action: ActionKind,
        attributes: Mapping[str, Any] | None = None,
        relations: Mapping[str, RelationChange] | None = None,
    ) -> PendingKey:
        aggregator = self.scope_provider().aggregator
        return aggregator.register_change(entity, action, attributes, relations)

    @staticmethod
    def _refs(items: Iterable[Any], related_type: str | None) -> tuple[RelationRef, ...]:
        refs = []
        for item in items:
            ref = RelationRef.coerce(item)
            if ref.type_hint is None and related_type:
                ref = RelationRef(ref.id, ref.display_name, related_type)
            refs.append(ref)
        return tuple(refs)

    def _propagate_to_parents(
        self,
        entity: Any,
        config: EntityAuditConfig,
        action: ActionKind,
    ) -> None:
        if not config.parents:
            return

        child = None
        for attribute, inverse in config.parents.items():
            parent = getattr(entity, attribute, None)
            if parent is None or not callable(getattr(parent, "audit_identity", None)):
                continue

            parent_type, parent_id = parent.audit_identity()
            if parent_id is None:
                logger.warning(
                    "Parent has no identity, skipping relation propagation",
                    parent_attribute=attribute,
                    parent_type=parent_type,
                )
                continue

            if not self.gate.allows(
                parent_type,
                self.registry.config_for(parent_type),
                ActionKind.RELATIONS_UPDATED,
            ):
                continue

            if child is None:
                child = RelationRef.from_entity(entity)

            if action is ActionKind.CREATED:
                change = RelationChange(added=(child,))
            else:
                change = RelationChange(removed=(child,))

            self._register(
                parent, ActionKind.RELATIONS_UPDATED, relations={inverse: change}
            )


__all__ = ["ChangeObserver"]
