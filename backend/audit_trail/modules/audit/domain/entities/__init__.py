"""Audit domain entities."""

from .audit_entry import AuditEntry
from .pending_change import PendingChange, PendingKey

__all__ = ["AuditEntry", "PendingChange", "PendingKey"]
