"""Runtime audit switches."""

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TypeVar

from audit_trail.core.config import EntityAuditConfig
from audit_trail.modules.audit.domain.enums.audit_enums import ActionKind

T = TypeVar("T")

_suppression_depth: ContextVar[int] = ContextVar("audit_suppression_depth", default=0)


class AuditGate:
    """
    Decides whether a notification is recorded.

    Two switches exist: ``suppressed()`` silences every entity type for the
    current context only (thread or asyncio task), while ``disable(type)``
    turns a type off for the whole process until ``enable(type)``.
    """

    def __init__(self):
        self._disabled: set[str] = set()
        self._lock = threading.Lock()

    @contextmanager
    def suppressed(self) -> Iterator[None]:
        """Suppress auditing in the current context for the duration of a block."""
        token = _suppression_depth.set(_suppression_depth.get() + 1)
        try:
            yield
        finally:
            _suppression_depth.reset(token)

    def without_auditing(self, callback: Callable[[], T]) -> T:
        """Run ``callback`` with auditing suppressed and return its result."""
        with self.suppressed():
            return callback()

    @property
    def is_suppressed(self) -> bool:
        return _suppression_depth.get() > 0

    def disable(self, entity_type: str) -> None:
        with self._lock:
            self._disabled.add(entity_type)

    def enable(self, entity_type: str) -> None:
        with self._lock:
            self._disabled.discard(entity_type)

    def is_enabled(self, entity_type: str) -> bool:
        if self.is_suppressed:
            return False
        with self._lock:
            return entity_type not in self._disabled

    def allows(
        self,
        entity_type: str,
        config: EntityAuditConfig,
        action: ActionKind | None = None,
    ) -> bool:
        """Check runtime switches, the type's enabled flag and its action switch."""
        if not config.enabled or not self.is_enabled(entity_type):
            return False
        if action is None:
            return True
        return config.should_log(action.slug)

    def reset(self) -> None:
        """Re-enable every type disabled with ``disable``."""
        with self._lock:
            self._disabled.clear()


default_gate = AuditGate()


def get_gate() -> AuditGate:
    return default_gate


__all__ = ["AuditGate", "default_gate", "get_gate"]
