"""Audit domain layer.

This layer contains the core logic for change tracking: the pending change
and audit entry entities, value objects, the diff engine and the sensitivity
matcher. Nothing here depends on a framework.
"""

from .entities.audit_entry import AuditEntry
from .entities.pending_change import PendingChange, PendingKey
from .enums.audit_enums import ActionKind, ActorType, SourceChannel
from .errors.audit_errors import (
    AuditConfigurationError,
    AuditSinkError,
    InvalidActionError,
    MissingEntityIdentityError,
)
from .services.diff_engine import compute_diff, mask_value, values_equal
from .services.sensitivity import SensitivityMatcher
from .value_objects import Actor, FieldChange, RelationChange, RelationRef

__all__ = [
    "ActionKind",
    "Actor",
    "ActorType",
    "AuditConfigurationError",
    "AuditEntry",
    "AuditSinkError",
    "FieldChange",
    "InvalidActionError",
    "MissingEntityIdentityError",
    "PendingChange",
    "PendingKey",
    "RelationChange",
    "RelationRef",
    "SensitivityMatcher",
    "SourceChannel",
    "compute_diff",
    "mask_value",
    "values_equal",
]
