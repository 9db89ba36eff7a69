"""Attribute and relation change value objects.

``AttributeDiff`` maps a field name to the ``FieldChange`` recorded for it;
``RelationDiff`` maps a relation name to the members attached and detached.
Both are plain dictionaries so they serialize to JSON without adapters.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from audit_trail.modules.audit.domain.value_objects.relation_ref import RelationRef


@dataclass(frozen=True)
class FieldChange:
    """Before/after pair for one attribute. ``new`` is None for removed fields."""

    old: Any = None
    new: Any = None

    def with_new(self, new: Any) -> "FieldChange":
        """Keep the baseline ``old`` and replace ``new``."""
        return FieldChange(old=self.old, new=new)

    def to_dict(self) -> dict[str, Any]:
        return {"old": self.old, "new": self.new}

    @classmethod
    def from_value(cls, value: "FieldChange | Mapping[str, Any]") -> "FieldChange":
        if isinstance(value, FieldChange):
            return value
        return cls(old=value.get("old"), new=value.get("new"))


@dataclass(frozen=True)
class RelationChange:
    """Members attached to and detached from one relation, in arrival order."""

    added: tuple[RelationRef, ...] = field(default_factory=tuple)
    removed: tuple[RelationRef, ...] = field(default_factory=tuple)

    @classmethod
    def of(
        cls,
        added: Iterable[Any] = (),
        removed: Iterable[Any] = (),
    ) -> "RelationChange":
        """Build from refs, entities, mappings or bare ids."""
        return cls(
            added=tuple(RelationRef.coerce(item) for item in added),
            removed=tuple(RelationRef.coerce(item) for item in removed),
        )

    def merged_with(self, other: "RelationChange") -> "RelationChange":
        """Concatenate ``other`` after this change. Duplicates are kept."""
        return RelationChange(
            added=self.added + other.added,
            removed=self.removed + other.removed,
        )

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "added": [ref.to_dict() for ref in self.added],
            "removed": [ref.to_dict() for ref in self.removed],
        }

    @classmethod
    def from_value(cls, value: "RelationChange | Mapping[str, Any]") -> "RelationChange":
        if isinstance(value, RelationChange):
            return value
        return cls.of(value.get("added") or (), value.get("removed") or ())


AttributeDiff = dict[str, FieldChange]
RelationDiff = dict[str, RelationChange]


def normalize_attribute_diff(
    diff: Mapping[str, "FieldChange | Mapping[str, Any]"] | None,
) -> AttributeDiff:
    """Accept ``{field: {"old": .., "new": ..}}`` mappings as well as FieldChange."""
    if not diff:
        return {}
    return {name: FieldChange.from_value(change) for name, change in diff.items()}


def normalize_relation_diff(
    diff: Mapping[str, "RelationChange | Mapping[str, Any]"] | None,
) -> RelationDiff:
    """Accept ``{relation: {"added": [..], "removed": [..]}}`` mappings as well."""
    if not diff:
        return {}
    return {name: RelationChange.from_value(change) for name, change in diff.items()}


def attribute_diff_to_dict(diff: AttributeDiff) -> dict[str, dict[str, Any]]:
    return {name: change.to_dict() for name, change in diff.items()}


def relation_diff_to_dict(diff: RelationDiff) -> dict[str, dict[str, list]]:
    return {name: change.to_dict() for name, change in diff.items()}
