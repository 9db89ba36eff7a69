from audit_trail.modules.audit.domain.value_objects.actor import Actor
from audit_trail.modules.audit.domain.value_objects.changes import (
    AttributeDiff,
    FieldChange,
    RelationChange,
    RelationDiff,
)
from audit_trail.modules.audit.domain.value_objects.relation_ref import RelationRef

__all__ = [
    "Actor",
    "AttributeDiff",
    "FieldChange",
    "RelationChange",
    "RelationDiff",
    "RelationRef",
]
