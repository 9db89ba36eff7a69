"""Port interfaces for the audit domain.

This module defines the contracts between the change-aggregation core and
its collaborators, following the Dependency Inversion Principle. The core
only ever talks to these protocols; concrete adapters live in the
infrastructure layer.
"""

from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from audit_trail.modules.audit.domain.entities.audit_entry import AuditEntry
    from audit_trail.modules.audit.domain.value_objects.actor import Actor
    from audit_trail.modules.audit.domain.value_objects.relation_ref import (
        RelationRef,
    )


@runtime_checkable
class AuditableEntity(Protocol):
    """Capability interface an observed entity type must implement."""

    def audit_identity(self) -> tuple[str, Any]:
        """Return ``(type_tag, id)``; the id must be stable for the unit of work."""
        ...

    def audit_snapshot(self) -> Mapping[str, Any]:
        """Return the current attribute values keyed by field name."""
        ...


@runtime_checkable
class DisplayNamed(Protocol):
    """Optional enrichment capability for relation references."""

    def audit_display_name(self) -> str | None:
        ...


class AuditSink(Protocol):
    """Synchronous persistence of finished entries."""

    def store(self, entry: "AuditEntry") -> "AuditEntry":
        """
        Persist an entry.

        Returns:
            The stored entry (with its storage id when the sink assigns one)

        Raises:
            AuditSinkError: If the entry could not be stored
        """
        ...


class AuditDispatcher(Protocol):
    """Asynchronous hand-off of finished entries."""

    def enqueue(self, entry: "AuditEntry") -> None:
        """
        Queue an entry for persistence by a worker.

        Raises:
            AuditSinkError: If the entry could not be queued
        """
        ...


class ActorResolver(Protocol):
    """Resolves the principal performing the current change."""

    def current_actor(self) -> "Actor":
        ...


class RequestContextProvider(Protocol):
    """Inbound request details. Every method returns None outside HTTP."""

    def correlation_id(self) -> str | None:
        ...

    def client_ip(self) -> str | None:
        ...

    def user_agent(self) -> str | None:
        ...

    def path(self) -> str | None:
        ...


class TransactionHook(Protocol):
    """Host transaction facility used to defer flushes until commit."""

    def is_in_transaction(self) -> bool:
        ...

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once after the enclosing transaction commits."""
        ...

    def after_rollback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once if the enclosing transaction rolls back."""
        ...

    def current_savepoint(self) -> Any:
        """Innermost open savepoint, or None outside of one."""
        ...

    def after_savepoint_end(
        self, savepoint: Any, callback: Callable[[bool, Any], None]
    ) -> None:
        """
        Run ``callback(released, parent)`` once when ``savepoint`` ends.

        ``released`` is False when the savepoint rolled back; ``parent`` is
        the enclosing savepoint, None when it is the outermost one.
        """
        ...


class RelationResolver(Protocol):
    """Looks up related entities to enrich relation references."""

    def resolve(
        self, relation_type: str, ids: Iterable[Any]
    ) -> list["RelationRef"]:
        ...


__all__ = [
    "ActorResolver",
    "AuditDispatcher",
    "AuditSink",
    "AuditableEntity",
    "DisplayNamed",
    "RelationResolver",
    "RequestContextProvider",
    "TransactionHook",
]
