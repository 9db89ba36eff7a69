"""Pending change entity.

A PendingChange accumulates every notification received for one entity
within one unit of work. It owns the merge rules; the aggregator owns the
lifecycle (creation, flush scheduling, removal).
"""

from dataclasses import dataclass, field, replace
from typing import Any

from audit_trail.modules.audit.domain.enums.audit_enums import ActionKind
from audit_trail.modules.audit.domain.value_objects.changes import (
    AttributeDiff,
    RelationChange,
    RelationDiff,
)


@dataclass(frozen=True)
class PendingKey:
    """Identity of a pending change: the scope plus the entity identity."""

    scope_id: str
    entity_type: str
    entity_id: str

    def __str__(self) -> str:
        return f"{self.scope_id}:{self.entity_type}:{self.entity_id}"


@dataclass
class PendingChange:
    """
    Mutable aggregation unit for one entity in one unit of work.

    Merge rules:
    - Deleted is absorbing.
    - Created upgrades any action other than Created/Deleted.
    - Anything else leaves the accumulated action unchanged; in particular
      RelationsUpdated is only promoted (to Updated) at flush time.
    - A field seen for the first time keeps its ``old`` as the baseline;
      later notifications only overwrite ``new``.
    - Relation members are appended in arrival order, duplicates kept.
    """

    key: PendingKey
    entity: Any
    action: ActionKind
    attributes: AttributeDiff = field(default_factory=dict)
    relations: RelationDiff = field(default_factory=dict)
    flush_scheduled: bool = False
    notifications: int = 0
    actor: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)
    identity: tuple[str, Any] | None = None

    def merge(
        self,
        action: ActionKind,
        attributes: AttributeDiff,
        relations: RelationDiff,
    ) -> None:
        """Fold one notification into the accumulated state."""
        self.merge_action(action)
        self.merge_attributes(attributes)
        self.merge_relations(relations)
        self.notifications += 1

    def merge_context(self, actor: Any = None, metadata: dict[str, Any] | None = None) -> None:
        """Explicit actor and caller metadata; later values win."""
        if actor is not None:
            self.actor = actor
        if metadata:
            self.metadata.update(metadata)

    def merge_action(self, action: ActionKind) -> None:
        if action is ActionKind.DELETED:
            self.action = ActionKind.DELETED
        elif action is ActionKind.CREATED and self.action not in (
            ActionKind.CREATED,
            ActionKind.DELETED,
        ):
            self.action = ActionKind.CREATED

    def merge_attributes(self, attributes: AttributeDiff) -> None:
        for name, change in attributes.items():
            existing = self.attributes.get(name)
            if existing is None:
                self.attributes[name] = change
            else:
                self.attributes[name] = existing.with_new(change.new)

    def merge_relations(self, relations: RelationDiff) -> None:
        for name, change in relations.items():
            existing = self.relations.get(name, RelationChange())
            self.relations[name] = existing.merged_with(change)

    def copy(self) -> "PendingChange":
        """Independent copy of the accumulated state."""
        return replace(
            self,
            attributes=dict(self.attributes),
            relations=dict(self.relations),
            metadata=dict(self.metadata),
        )

    @property
    def is_empty(self) -> bool:
        """No attribute change and no relation member recorded."""
        return not self.attributes and all(
            change.is_empty for change in self.relations.values()
        )

    def should_emit(self) -> bool:
        """Updated/RelationsUpdated with nothing recorded produce no entry."""
        if self.action in (ActionKind.UPDATED, ActionKind.RELATIONS_UPDATED):
            return not self.is_empty
        return True

    def resolved_action(self) -> ActionKind:
        """Action to record; RelationsUpdated with field changes becomes Updated."""
        if self.action is ActionKind.RELATIONS_UPDATED and self.attributes:
            return ActionKind.UPDATED
        return self.action
