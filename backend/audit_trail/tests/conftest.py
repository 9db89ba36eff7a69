"""
Global pytest configuration and fixtures for all tests.

Provides:
- In-memory auditable entities
- Recording sink and controllable transaction hook
- Wired builder, observer and scope
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from audit_trail.core.config import EntityAuditConfig
from audit_trail.modules.audit.application.observers.change_observer import (
    ChangeObserver,
)
from audit_trail.modules.audit.application.services.audit_entry_builder import (
    AuditEntryBuilder,
)
from audit_trail.modules.audit.application.services.audit_gate import AuditGate
from audit_trail.modules.audit.application.services.audit_registry import (
    AuditRegistry,
)
from audit_trail.modules.audit.application.services.audit_scope import AuditScope
from audit_trail.modules.audit.domain.entities.audit_entry import AuditEntry
from audit_trail.modules.audit.domain.services.sensitivity import SensitivityMatcher

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


class FakeEntity:
    """Plain auditable object; attributes are passed as keyword arguments."""

    def __init__(self, type_tag: str, entity_id: Any, name: str | None = None, **attributes: Any):
        self.type_tag = type_tag
        self.id = entity_id
        self.name = name
        self.attributes = dict(attributes)
        self.links: dict[str, Any] = {}

    def audit_identity(self) -> tuple[str, Any]:
        return self.type_tag, self.id

    def audit_snapshot(self) -> dict[str, Any]:
        return dict(self.attributes)

    def audit_display_name(self) -> str | None:
        return self.name

    def __getattr__(self, item: str) -> Any:
        links = self.__dict__.get("links", {})
        if item in links:
            return links[item]
        raise AttributeError(item)


class RecordingSink:
    """AuditSink keeping stored entries in memory."""

    def __init__(self):
        self.entries: list[AuditEntry] = []

    def store(self, entry: AuditEntry) -> AuditEntry:
        stored = entry.with_id(len(self.entries) + 1)
        self.entries.append(stored)
        return stored


class FakeTransactionHook:
    """TransactionHook driven by the test."""

    def __init__(self, in_transaction: bool = True):
        self.in_transaction = in_transaction
        self.commit_callbacks: list[Callable[[], None]] = []
        self.rollback_callbacks: list[Callable[[], None]] = []
        self.savepoints: list[object] = []
        self.savepoint_callbacks: dict[object, list[Callable]] = {}

    def is_in_transaction(self) -> bool:
        return self.in_transaction

    def after_commit(self, callback: Callable[[], None]) -> None:
        self.commit_callbacks.append(callback)

    def after_rollback(self, callback: Callable[[], None]) -> None:
        self.rollback_callbacks.append(callback)

    def current_savepoint(self) -> object | None:
        return self.savepoints[-1] if self.savepoints else None

    def after_savepoint_end(self, savepoint: object, callback: Callable) -> None:
        self.savepoint_callbacks.setdefault(savepoint, []).append(callback)

    def begin_savepoint(self) -> object:
        savepoint = object()
        self.savepoints.append(savepoint)
        return savepoint

    def release_savepoint(self) -> None:
        self._end_savepoint(released=True)

    def rollback_savepoint(self) -> None:
        self._end_savepoint(released=False)

    def _end_savepoint(self, released: bool) -> None:
        savepoint = self.savepoints.pop()
        parent = self.current_savepoint()
        for callback in self.savepoint_callbacks.pop(savepoint, []):
            callback(released, parent)

    def commit(self) -> None:
        callbacks, self.commit_callbacks, self.rollback_callbacks = (
            self.commit_callbacks,
            [],
            [],
        )
        for callback in callbacks:
            callback()

    def rollback(self) -> None:
        callbacks, self.commit_callbacks, self.rollback_callbacks = (
            self.rollback_callbacks,
            [],
            [],
        )
        for callback in callbacks:
            callback()


@pytest.fixture
def make_entity() -> Callable[..., FakeEntity]:
    """Factory for FakeEntity instances."""
    return FakeEntity


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_hook() -> Callable[..., FakeTransactionHook]:
    """Factory for FakeTransactionHook instances."""
    return FakeTransactionHook


@pytest.fixture
def transaction_hook() -> FakeTransactionHook:
    return FakeTransactionHook(in_transaction=True)


@pytest.fixture
def builder(sink) -> AuditEntryBuilder:
    """Builder storing into the recording sink with a fixed clock."""
    return AuditEntryBuilder(sink=sink, clock=lambda: FIXED_NOW)


@pytest.fixture
def gate() -> AuditGate:
    return AuditGate()


@pytest.fixture
def registry() -> AuditRegistry:
    """Registry with a Team/Member parent relation."""
    registry = AuditRegistry()
    registry.register("Team", relations={"members": "Member"})
    registry.register("Member", parents={"team": "members"})
    registry.register("User", sensitive_fields=("ssn",))
    registry.register("Setting", log_deleted=False)
    registry.register("Ignored", EntityAuditConfig(enabled=False))
    registry.resolve()
    return registry


@pytest.fixture
def observer(registry, gate) -> ChangeObserver:
    return ChangeObserver(
        registry=registry,
        matcher=SensitivityMatcher(("password", "*token*")),
        gate=gate,
    )


@pytest.fixture
def scope(builder, transaction_hook):
    """Open scope inside a transaction."""
    with AuditScope(builder, transaction_hook, scope_id="scope_test") as scope:
        yield scope


@pytest.fixture
def autocommit_scope(builder):
    """Open scope with no enclosing transaction."""
    with AuditScope(
        builder, FakeTransactionHook(in_transaction=False), scope_id="scope_auto"
    ) as scope:
        yield scope
