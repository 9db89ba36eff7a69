"""Transaction hooks.

Adapters that let the change aggregator defer flushes until the host
transaction commits, discard pending changes when it rolls back and revert
the changes made inside a savepoint that rolls back.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

from audit_trail.core.logging import get_logger
from audit_trail.modules.audit.domain.interfaces.ports import TransactionHook

logger = get_logger(__name__)

HOOK_INFO_KEY = "audit_transaction_hook"

SavepointCallback = Callable[[bool, Any], None]


class NullTransactionHook:
    """Never inside a transaction: every change is flushed immediately."""

    def is_in_transaction(self) -> bool:
        return False

    def after_commit(self, callback: Callable[[], None]) -> None:
        callback()

    def after_rollback(self, callback: Callable[[], None]) -> None:
        pass

    def current_savepoint(self) -> Any:
        return None

    def after_savepoint_end(self, savepoint: Any, callback: SavepointCallback) -> None:
        pass


class SqlAlchemyTransactionHook:
    """
    Transaction hook bound to one SQLAlchemy Session.

    Commit and rollback callbacks run once, on the next commit or rollback of
    the outermost session transaction, then are cleared. Savepoints
    (``begin_nested``) get their own callbacks, run when the savepoint is
    released or rolled back. A callback that raises is logged and swallowed:
    the business transaction has already ended and must not be affected by
    audit failures.
    """

    def __init__(self, session: Session):
        self.session = session
        self._commit_callbacks: list[Callable[[], None]] = []
        self._rollback_callbacks: list[Callable[[], None]] = []
        self._savepoint_callbacks: dict[SessionTransaction, list[SavepointCallback]] = {}
        self._released: set[SessionTransaction] = set()

        event.listen(session, "after_commit", self._on_commit)
        event.listen(session, "after_transaction_end", self._on_transaction_end)

    @classmethod
    def for_session(cls, session: Session) -> "SqlAlchemyTransactionHook":
        """Return the hook attached to ``session``, creating it on first use."""
        hook = session.info.get(HOOK_INFO_KEY)
        if hook is None:
            hook = cls(session)
            session.info[HOOK_INFO_KEY] = hook
        return hook

    def is_in_transaction(self) -> bool:
        return self.session.in_transaction()

    def after_commit(self, callback: Callable[[], None]) -> None:
        self._commit_callbacks.append(callback)

    def after_rollback(self, callback: Callable[[], None]) -> None:
        self._rollback_callbacks.append(callback)

    def current_savepoint(self) -> SessionTransaction | None:
        return self.session.get_nested_transaction()

    def after_savepoint_end(
        self, savepoint: SessionTransaction, callback: SavepointCallback
    ) -> None:
        self._savepoint_callbacks.setdefault(savepoint, []).append(callback)

    @property
    def pending_callbacks(self) -> int:
        return (
            len(self._commit_callbacks)
            + len(self._rollback_callbacks)
            + sum(len(callbacks) for callbacks in self._savepoint_callbacks.values())
        )

    def _on_commit(self, session: Session) -> None:
        if session.in_nested_transaction():
            # after_commit fires for a savepoint release before the savepoint ends
            self._released.add(session.get_nested_transaction())
            return

        callbacks = self._commit_callbacks
        self._clear()
        self._run(callbacks, "commit")

    def _on_transaction_end(
        self, session: Session, transaction: SessionTransaction
    ) -> None:
        if transaction.nested:
            self._end_savepoint(transaction)
            return
        if transaction.parent is not None:
            return

        # Reached without a commit: rollback or close of an open transaction
        callbacks = self._rollback_callbacks
        self._clear()
        self._run(callbacks, "rollback")

    def _end_savepoint(self, savepoint: SessionTransaction) -> None:
        released = savepoint in self._released
        self._released.discard(savepoint)
        callbacks = self._savepoint_callbacks.pop(savepoint, [])
        parent = _enclosing_savepoint(savepoint)
        phase = "savepoint_release" if released else "savepoint_rollback"
        # Bound so that callbacks handing work to the parent savepoint reach this hook
        with bind_transaction_hook(self):
            self._run([lambda cb=cb: cb(released, parent) for cb in callbacks], phase)

    def _clear(self) -> None:
        self._commit_callbacks = []
        self._rollback_callbacks = []
        self._savepoint_callbacks.clear()
        self._released.clear()

    def _run(self, callbacks: list[Callable[[], None]], phase: str) -> None:
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Audit transaction callback failed", phase=phase)


def _enclosing_savepoint(savepoint: SessionTransaction) -> SessionTransaction | None:
    parent = savepoint.parent
    while parent is not None and not parent.nested:
        parent = parent.parent
    return parent


_bound_hook: ContextVar[TransactionHook | None] = ContextVar(
    "audit_bound_transaction_hook", default=None
)


class ContextTransactionHook:
    """
    Delegates to the hook bound in the current context.

    Scopes opened before the database session is known (for example by the
    request middleware) use this hook; the ORM listener binds the session's
    own hook around each notification it emits.
    """

    def __init__(self, fallback: TransactionHook | None = None):
        self.fallback = fallback or NullTransactionHook()

    @property
    def current(self) -> TransactionHook:
        return _bound_hook.get() or self.fallback

    def is_in_transaction(self) -> bool:
        return self.current.is_in_transaction()

    def after_commit(self, callback: Callable[[], None]) -> None:
        self.current.after_commit(callback)

    def after_rollback(self, callback: Callable[[], None]) -> None:
        self.current.after_rollback(callback)

    def current_savepoint(self) -> Any:
        return self.current.current_savepoint()

    def after_savepoint_end(self, savepoint: Any, callback: SavepointCallback) -> None:
        self.current.after_savepoint_end(savepoint, callback)


@contextmanager
def bind_transaction_hook(hook: TransactionHook) -> Iterator[TransactionHook]:
    """Bind ``hook`` for ContextTransactionHook users within a block."""
    token = _bound_hook.set(hook)
    try:
        yield hook
    finally:
        _bound_hook.reset(token)


__all__ = [
    "ContextTransactionHook",
    "NullTransactionHook",
    "SqlAlchemyTransactionHook",
    "bind_transaction_hook",
]
