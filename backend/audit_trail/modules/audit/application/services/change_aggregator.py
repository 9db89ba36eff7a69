"""Change aggregator.

Collects every change notification for an entity within one unit of work
into a single PendingChange and flushes it exactly once: immediately when no
transaction is open, otherwise after the enclosing transaction commits. A
rollback discards the pending change without writing anything.
"""

import threading
from collections.abc import Mapping
from typing import Any

from audit_trail.core.logging import get_logger
from audit_trail.modules.audit.domain.entities.audit_entry import AuditEntry
from audit_trail.modules.audit.domain.entities.pending_change import (
    PendingChange,
    PendingKey,
)
from audit_trail.modules.audit.domain.enums.audit_enums import ActionKind
from audit_trail.modules.audit.domain.errors.audit_errors import (
    MissingEntityIdentityError,
)
from audit_trail.modules.audit.domain.interfaces.ports import TransactionHook
from audit_trail.modules.audit.domain.value_objects.changes import (
    normalize_attribute_diff,
    normalize_relation_diff,
)

logger = get_logger(__name__)


class ChangeAggregator:
    """
    Per-scope store of pending changes.

    Each AuditScope owns one aggregator, so two concurrent units of work never
    share pending state. Within a scope, notifications for the same key are
    serialized by a re-entrant lock; flush callbacks may re-enter the
    aggregator (for example a sink that itself triggers a notification).

    Inside a savepoint, the state of each key before the savepoint first
    touched it is kept as a checkpoint; rolling the savepoint back restores
    those checkpoints.
    """

    def __init__(self, scope_id: str, builder: Any, transaction_hook: TransactionHook):
        """
        Initialize the aggregator.

        Args:
            scope_id: Identifier of the owning unit of work
            builder: Object exposing ``build(entity, action, attributes,
                relations, actor=None, metadata=None)``
            transaction_hook: Host transaction facility
        """
        self.scope_id = scope_id
        self.builder = builder
        self.transaction_hook = transaction_hook
        self._pending: dict[PendingKey, PendingChange] = {}
        # Savepoint -> state of each key before its first change in that savepoint
        self._checkpoints: dict[Any, dict[PendingKey, PendingChange | None]] = {}
        self._lock = threading.RLock()

    def key_for(self, entity: Any) -> PendingKey:
        """
        Build the pending key of an entity.

        Raises:
            MissingEntityIdentityError: If the entity cannot be identified
        """
        entity_type, entity_id = self.identity_of(entity)
        return PendingKey(
            scope_id=self.scope_id,
            entity_type=str(entity_type),
            entity_id=str(entity_id),
        )

    @staticmethod
    def identity_of(entity: Any) -> tuple[str, Any]:
        identity = getattr(entity, "audit_identity", None)
        if not callable(identity):
            raise MissingEntityIdentityError(entity, "no audit_identity()")

        try:
            entity_type, entity_id = identity()
        except (TypeError, ValueError) as e:
            raise MissingEntityIdentityError(entity, str(e), cause=e) from e

        if not entity_type or entity_id is None:
            raise MissingEntityIdentityError(entity, "identity is not assigned")

        return entity_type, entity_id

    def register_change(
        self,
        entity: Any,
        action: ActionKind | str | int,
        attributes: Mapping[str, Any] | None = None,
        relations: Mapping[str, Any] | None = None,
        *,
        actor: Any = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> PendingKey:
        """
        Merge one change notification into the pending change of its entity.

        Outside a transaction the change is flushed before returning; inside
        one, a single after-commit flush and a single after-rollback discard
        are registered the first time the key is seen.

        Returns:
            The pending key of the entity

        Raises:
            MissingEntityIdentityError: If the entity cannot be identified
            InvalidActionError: If the action cannot be parsed
            AuditSinkError: If an immediate flush fails
        """
        identity = self.identity_of(entity)
        key = PendingKey(self.scope_id, str(identity[0]), str(identity[1]))
        action = ActionKind.parse(action)
        attribute_diff = normalize_attribute_diff(attributes)
        relation_diff = normalize_relation_diff(relations)
        in_transaction = self.transaction_hook.is_in_transaction()

        with self._lock:
            pending = self._pending.get(key)
            if in_transaction:
                self._checkpoint(key, pending)
            if pending is None:
                pending = PendingChange(
                    key=key, entity=entity, action=action, identity=identity
                )
                self._pending[key] = pending

            pending.merge(action, attribute_diff, relation_diff)
            pending.merge_context(actor, dict(metadata) if metadata else None)

            schedule = in_transaction and not pending.flush_scheduled
            if schedule:
                pending.flush_scheduled = True

        if not in_transaction:
            self.flush(key)
            return key

        if schedule:
            self.transaction_hook.after_commit(lambda: self.flush(key))
            self.transaction_hook.after_rollback(lambda: self.discard(key))
            logger.debug(
                "Audit flush scheduled",
                entity_type=key.entity_type,
                entity_id=key.entity_id,
                action=action.slug,
            )

        return key

    def flush(self, key: PendingKey) -> AuditEntry | None:
        """
        Write the pending change of ``key``.

        Idempotent: the pending change is removed before anything else, so a
        second call (or a re-entrant one) finds nothing and returns None.

        Returns:
            The stored entry; None when nothing was pending, the change was
            empty or the entry was queued

        Raises:
            AuditSinkError: If the sink or dispatcher fails
        """
        with self._lock:
            pending = self._pending.pop(key, None)

        if pending is None:
            return None

        if not pending.should_emit():
            logger.debug(
                "Audit flush skipped, no changes recorded",
                entity_type=key.entity_type,
                entity_id=key.entity_id,
            )
            return None

        return self.builder.build(
            pending.entity,
            pending.resolved_action(),
            pending.attributes,
            pending.relations,
            actor=pending.actor,
            metadata=pending.metadata or None,
            identity=pending.identity,
        )

    def flush_all(self, include_scheduled: bool = True) -> list[AuditEntry]:
        """
        Flush pending changes in registration order.

        With ``include_scheduled=False`` changes waiting for a commit are left
        to their after-commit callback.
        """
        entries = []
        for key in self._keys(include_scheduled):
            entry = self.flush(key)
            if entry is not None:
                entries.append(entry)
        return entries

    def discard(self, key: PendingKey) -> bool:
        """Drop the pending change of ``key`` without writing it."""
        with self._lock:
            discarded = self._pending.pop(key, None) is not None

        if discarded:
            logger.debug(
                "Audit change discarded",
                entity_type=key.entity_type,
                entity_id=key.entity_id,
            )
        return discarded

    def discard_all(self, include_scheduled: bool = True) -> int:
        keys = self._keys(include_scheduled)
        return sum(1 for key in keys if self.discard(key))

    def _checkpoint(self, key: PendingKey, pending: PendingChange | None) -> None:
        """Remember the state of ``key`` before the current savepoint touches it."""
        savepoint = self.transaction_hook.current_savepoint()
        if savepoint is None:
            return

        checkpoints = self._savepoint_checkpoints(savepoint)
        if key not in checkpoints:
            checkpoints[key] = pending.copy() if pending is not None else None

    def _savepoint_checkpoints(
        self, savepoint: Any
    ) -> dict[PendingKey, PendingChange | None]:
        checkpoints = self._checkpoints.get(savepoint)
        if checkpoints is None:
            checkpoints = self._checkpoints[savepoint] = {}
            self.transaction_hook.after_savepoint_end(
                savepoint,
                lambda released, parent: self._end_savepoint(savepoint, released, parent),
            )
        return checkpoints

    def _end_savepoint(self, savepoint: Any, released: bool, parent: Any) -> None:
        """
        Settle the checkpoints of a savepoint that ended.

        A rollback restores every key the savepoint touched. A release hands
        the checkpoints to the enclosing savepoint, so that its own rollback
        undoes them too.
        """
        with self._lock:
            checkpoints = self._checkpoints.pop(savepoint, {})
            if released:
                if parent is not None and checkpoints:
                    outer = self._savepoint_checkpoints(parent)
                    for key, state in checkpoints.items():
                        outer.setdefault(key, state)
                return

            for key, state in checkpoints.items():
                if state is None:
                    self._pending.pop(key, None)
                else:
                    self._pending[key] = state

        if checkpoints:
            logger.debug(
                "Audit changes reverted to savepoint", reverted=len(checkpoints)
            )

    def _keys(self, include_scheduled: bool) -> list[PendingKey]:
        with self._lock:
            return [
                key
                for key, pending in self._pending.items()
                if include_scheduled or not pending.flush_scheduled
            ]

    def pending(self, key: PendingKey) -> PendingChange | None:
        with self._lock:
            return self._pending.get(key)

    def pending_keys(self) -> list[PendingKey]:
        with self._lock:
            return list(self._pending)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._pending


__all__ = ["ChangeAggregator"]
