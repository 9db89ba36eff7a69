"""Relation reference value object."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RelationRef:
    """
    Lightweight pointer to a related entity, captured at change time.

    The reference is independent of the related entity's live state, so a
    later rename or deletion does not rewrite history.

    Attributes:
        id: Identifier of the related entity
        display_name: Name shown to auditors (``#<id>`` when unknown)
        type_hint: Entity type tag of the related entity, when known
    """

    id: Any
    display_name: str | None = None
    type_hint: str | None = None

    @classmethod
    def from_entity(cls, entity: Any) -> "RelationRef":
        """Build a reference from an auditable entity."""
        type_tag, entity_id = entity.audit_identity()
        display_name = None
        display = getattr(entity, "audit_display_name", None)
        if callable(display):
            display_name = display()
        return cls(
            id=entity_id,
            display_name=display_name or f"#{entity_id}",
            type_hint=type_tag,
        )

    @classmethod
    def coerce(cls, value: Any) -> "RelationRef":
        """Accept a RelationRef, an auditable entity, a mapping or a bare id."""
        if isinstance(value, RelationRef):
            return value
        if isinstance(value, Mapping):
            return cls(
                id=value.get("id"),
                display_name=value.get("name", value.get("display_name")),
                type_hint=value.get("type", value.get("type_hint")),
            )
        if callable(getattr(value, "audit_identity", None)):
            return cls.from_entity(value)
        return cls(id=value)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.display_name, "type": self.type_hint}
