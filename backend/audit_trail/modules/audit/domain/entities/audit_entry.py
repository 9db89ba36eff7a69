"""Audit entry entity.

This module defines the AuditEntry record produced when a pending change is
flushed. An entry is write-once: every field is frozen at construction and
the diff mappings are exposed read-only.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from audit_trail.modules.audit.domain.enums.audit_enums import ActionKind
from audit_trail.modules.audit.domain.value_objects.actor import Actor
from audit_trail.modules.audit.domain.value_objects.changes import (
    AttributeDiff,
    RelationDiff,
    attribute_diff_to_dict,
    normalize_attribute_diff,
    normalize_relation_diff,
    relation_diff_to_dict,
)


@dataclass(frozen=True)
class AuditEntry:
    """
    Immutable audit record.

    Attributes:
        entity_type: Type tag of the audited entity
        entity_id: Identifier of the audited entity
        action: Lifecycle action recorded
        actor_type: Kind of principal (``user``, ``system``...)
        actor_id: Principal identifier, None for the system actor
        attributes: Field-level changes (masked where sensitive)
        relations: Relation membership changes
        metadata: Request id, source channel, client ip, user agent and
            caller supplied keys
        timestamp: When the entry was built (UTC)
        id: Storage identifier, assigned by the sink
    """

    entity_type: str
    entity_id: Any
    action: ActionKind
    actor_type: str
    actor_id: Any = None
    attributes: Mapping[str, Any] = field(default_factory=dict)
    relations: Mapping[str, Any] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "action", ActionKind.parse(self.action))
        object.__setattr__(
            self,
            "attributes",
            MappingProxyType(normalize_attribute_diff(self.attributes)),
        )
        object.__setattr__(
            self,
            "relations",
            MappingProxyType(normalize_relation_diff(self.relations)),
        )
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def actor(self) -> Actor:
        return Actor(type=self.actor_type, id=self.actor_id)

    @property
    def attribute_diff(self) -> AttributeDiff:
        """A mutable copy of the attribute diff."""
        return dict(self.attributes)

    @property
    def relation_diff(self) -> RelationDiff:
        """A mutable copy of the relation diff."""
        return dict(self.relations)

    def with_id(self, entry_id: Any) -> "AuditEntry":
        """Return a copy carrying the storage identifier."""
        return replace(self, id=entry_id)

    def summary(self) -> str:
        """Plain-text one-liner, e.g. ``user#7 Updated Invoice #42``."""
        return f"{self.actor} {self.action.label} {self.entity_type} #{self.entity_id}"

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation, used for queue transport."""
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": int(self.action),
            "actor_type": self.actor_type,
            "actor_id": self.actor_id,
            "attributes": attribute_diff_to_dict(dict(self.attributes)),
            "relations": relation_diff_to_dict(dict(self.relations)),
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuditEntry":
        """Rebuild an entry produced by ``to_dict``."""
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            entity_type=data["entity_type"],
            entity_id=data["entity_id"],
            action=ActionKind.parse(data["action"]),
            actor_type=data.get("actor_type") or "system",
            actor_id=data.get("actor_id"),
            attributes=data.get("attributes") or {},
            relations=data.get("relations") or {},
            metadata=data.get("metadata") or {},
            timestamp=timestamp or datetime.now(UTC),
            id=data.get("id"),
        )
