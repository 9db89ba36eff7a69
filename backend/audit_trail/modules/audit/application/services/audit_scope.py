"""Audit scopes.

An AuditScope is one unit of work: an HTTP request, a console command or a
database transaction. It owns the ChangeAggregator of that unit of work and
is tracked through a ContextVar, so concurrent requests running in threads or
asyncio tasks never see each other's pending changes.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Any
from uuid import uuid4

from structlog.contextvars import bind_contextvars, reset_contextvars

from audit_trail.core.logging import get_logger
from audit_trail.modules.audit.application.services.change_aggregator import (
    ChangeAggregator,
)
from audit_trail.modules.audit.domain.errors.audit_errors import NoActiveScopeError
from audit_trail.modules.audit.domain.interfaces.ports import TransactionHook

logger = get_logger(__name__)

current_scope_var: ContextVar["AuditScope | None"] = ContextVar(
    "audit_scope", default=None
)


class AuditScope:
    """
    Unit of work owning a ChangeAggregator.

    On a clean exit, pending changes that are not waiting for a commit are
    flushed; on an exception they are discarded.
    """

    def __init__(
        self,
        builder: Any,
        transaction_hook: TransactionHook,
        scope_id: str | None = None,
        request_id: str | None = None,
    ):
        self.scope_id = scope_id or f"scope_{uuid4().hex}"
        self.request_id = request_id
        self.transaction_hook = transaction_hook
        self.aggregator = ChangeAggregator(self.scope_id, builder, transaction_hook)
        self._token: Token | None = None
        self._log_tokens: dict[str, Any] = {}

    def __enter__(self) -> "AuditScope":
        self._token = current_scope_var.set(self)
        context = {"audit_scope_id": self.scope_id}
        if self.request_id:
            context["request_id"] = self.request_id
        self._log_tokens = bind_contextvars(**context)
        logger.debug("Audit scope opened")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self.close(failed=exc_type is not None)
        finally:
            reset_contextvars(**self._log_tokens)
            if self._token is not None:
                current_scope_var.reset(self._token)
                self._token = None

    def close(self, failed: bool = False) -> None:
        """
        Settle changes that are not waiting for a commit.

        Changes scheduled on a transaction stay with their commit and
        rollback callbacks.
        """
        if failed:
            discarded = self.aggregator.discard_all(include_scheduled=False)
            logger.debug("Audit scope closed after an error", discarded=discarded)
            return

        flushed = self.aggregator.flush_all(include_scheduled=False)
        logger.debug(
            "Audit scope closed",
            flushed=len(flushed),
            awaiting_commit=len(self.aggregator),
        )


def current_scope() -> AuditScope | None:
    """Scope of the current context, if any."""
    return current_scope_var.get()


def require_scope() -> AuditScope:
    """
    Scope of the current context.

    Raises:
        NoActiveScopeError: If no scope is active
    """
    scope = current_scope_var.get()
    if scope is None:
        raise NoActiveScopeError()
    return scope


@contextmanager
def audit_scope(
    builder: Any,
    transaction_hook: TransactionHook,
    scope_id: str | None = None,
    request_id: str | None = None,
) -> Iterator[AuditScope]:
    """Open an AuditScope for the duration of a block."""
    with AuditScope(builder, transaction_hook, scope_id, request_id) as scope:
        yield scope


@contextmanager
def use_scope(scope: AuditScope) -> Iterator[AuditScope]:
    """Make ``scope`` current for a block without opening or closing it."""
    token = current_scope_var.set(scope)
    try:
        yield scope
    finally:
        current_scope_var.reset(token)


__all__ = [
    "AuditScope",
    "audit_scope",
    "current_scope",
    "current_scope_var",
    "require_scope",
    "use_scope",
]
