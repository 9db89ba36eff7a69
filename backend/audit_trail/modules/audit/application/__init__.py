"""Audit application layer.

Orchestrates change tracking: the observer receives lifecycle notifications,
the aggregator of the current scope accumulates them and the builder turns a
flushed change into a delivered audit entry.
"""

from .observers.change_observer import ChangeObserver
from .services.audit_entry_builder import AuditEntryBuilder
from .services.audit_gate import AuditGate, default_gate
from .services.audit_registry import AuditRegistry
from .services.audit_scope import AuditScope, audit_scope, current_scope
from .services.audit_service import AuditService
from .services.change_aggregator import ChangeAggregator

__all__ = [
    "AuditEntryBuilder",
    "AuditGate",
    "AuditRegistry",
    "AuditScope",
    "AuditService",
    "ChangeAggregator",
    "ChangeObserver",
    "audit_scope",
    "current_scope",
    "default_gate",
]
