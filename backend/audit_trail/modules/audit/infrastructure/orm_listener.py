"""SQLAlchemy integration.

``AuditableMixin`` gives declarative models the capability interface the
observer needs, and ``install_audit_listeners`` translates the session's
unit-of-work events into observer notifications:

- before_flush: snapshot of every instance about to be deleted, loaded while
  the row still exists
- after_flush: created, updated, deleted, restored and collection membership
  notifications, with primary keys already assigned
"""

from collections.abc import Callable
from typing import Any, ClassVar
from uuid import uuid4

from sqlalchemy import event, inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import NO_VALUE

from audit_trail.core.errors import AuditTrailError
from audit_trail.core.logging import get_logger
from audit_trail.modules.audit.application.observers.change_observer import (
    ChangeObserver,
)
from audit_trail.modules.audit.application.services.audit_scope import (
    AuditScope,
    current_scope,
    use_scope,
)
from audit_trail.modules.audit.infrastructure.transaction import (
    SqlAlchemyTransactionHook,
    bind_transaction_hook,
)

logger = get_logger(__name__)

DELETED_SNAPSHOTS_KEY = "audit_deleted_snapshots"
SCOPE_INFO_KEY = "audit_session_scope"


class AuditableMixin:
    """
    Audit capability for SQLAlchemy declarative models.

    Class attributes:
        __audit_type__: Type tag recorded on entries (class name by default)
        __audit_display_fields__: Attributes tried, in order, for the name
            shown in relation references
        __audit_soft_delete_field__: Column holding the soft-delete marker
    """

    __audit_type__: ClassVar[str | None] = None
    __audit_display_fields__: ClassVar[tuple[str, ...]] = ("name", "title", "label", "code")
    __audit_soft_delete_field__: ClassVar[str] = "deleted_at"

    @classmethod
    def audit_type(cls) -> str:
        return cls.__audit_type__ or cls.__name__

    def audit_identity(self) -> tuple[str, Any]:
        state = inspect(self)
        if state.identity is not None:
            key = state.identity
        else:
            key = tuple(
                state.dict.get(state.mapper.get_property_by_column(column).key)
                for column in state.mapper.primary_key
            )

        if not key or any(part is None for part in key):
            return self.audit_type(), None
        return self.audit_type(), key[0] if len(key) == 1 else key

    def audit_snapshot(self) -> dict[str, Any]:
        """Column values currently held by the instance; nothing is loaded."""
        state = inspect(self)
        return {
            attr.key: state.dict[attr.key]
            for attr in state.mapper.column_attrs
            if attr.key in state.dict
        }

    def audit_display_name(self) -> str | None:
        """First non-empty display field; expired attributes are loaded."""
        for field in self.__audit_display_fields__:
            value = getattr(self, field, None)
            if value:
                return str(value)
        return None


@event.listens_for(AuditableMixin, "mapper_configured", propagate=True)
def _enable_active_history(mapper, class_) -> None:
    """Load the previous value of a column before it is overwritten."""
    for attr in mapper.column_attrs:
        event.listen(getattr(class_, attr.key), "set", _on_set, active_history=True)


def _on_set(target, value, oldvalue, initiator) -> None:
    pass


def install_audit_listeners(
    target: Any,
    observer: ChangeObserver,
    builder: Any = None,
) -> Callable[[], None]:
    """
    Feed the unit-of-work events of ``target`` to ``observer``.

    Notifications go to the active audit scope. When none is active (a
    script, a worker) and a builder is given, one scope is opened per session
    transaction and released when that transaction ends; without a builder
    such flushes are not audited. Audit failures are logged and never fail
    the flush.

    Args:
        target: A Session, a sessionmaker, the Session class or an
            AsyncSession (its ``sync_session`` receives the listeners)
        observer: Observer receiving the notifications
        builder: Entry builder for scopes opened by the listener

    Returns:
        A callable removing the listeners again
    """
    if isinstance(target, AsyncSession):
        target = target.sync_session

    def before_flush(session: Session, flush_context, instances) -> None:
        snapshots = session.info.setdefault(DELETED_SNAPSHOTS_KEY, {})
        for instance in session.deleted:
            if isinstance(instance, AuditableMixin):
                _load_columns(instance)
                snapshots[id(instance)] = instance.audit_snapshot()

    def after_flush(session: Session, flush_context) -> None:
        snapshots = session.info.pop(DELETED_SNAPSHOTS_KEY, {})
        hook = SqlAlchemyTransactionHook.for_session(session)
        scope = current_scope() or _session_scope(session, hook, builder)
        if scope is None:
            logger.warning("No audit scope active, flush is not audited")
            return

        with bind_transaction_hook(hook), use_scope(scope):
            for instance in list(session.new):
                if isinstance(instance, AuditableMixin):
                    _guarded(instance, _notify_create, observer, instance)

            for instance in list(session.dirty):
                if isinstance(instance, AuditableMixin) and session.is_modified(instance):
                    _guarded(instance, _notify_update, observer, instance)

            for instance in list(session.deleted):
                if isinstance(instance, AuditableMixin):
                    _guarded(
                        instance, observer.on_deleted, instance, snapshots.get(id(instance))
                    )

    event.listen(target, "before_flush", before_flush)
    event.listen(target, "after_flush", after_flush)
    logger.debug("Audit listeners installed", target=type(target).__name__)

    def remove() -> None:
        event.remove(target, "before_flush", before_flush)
        event.remove(target, "after_flush", after_flush)

    return remove


def _session_scope(
    session: Session, hook: SqlAlchemyTransactionHook, builder: Any
) -> AuditScope | None:
    """Scope owned by the current transaction of ``session``."""
    scope = session.info.get(SCOPE_INFO_KEY)
    if scope is not None or builder is None:
        return scope

    scope = AuditScope(builder, hook, scope_id=f"session_{uuid4().hex}")
    session.info[SCOPE_INFO_KEY] = scope

    def release() -> None:
        session.info.pop(SCOPE_INFO_KEY, None)

    hook.after_commit(release)
    hook.after_rollback(release)
    logger.debug("Audit scope opened for session transaction", scope_id=scope.scope_id)
    return scope


def _guarded(instance: AuditableMixin, notify: Callable[..., Any], *args: Any) -> None:
    try:
        notify(*args)
    except AuditTrailError:
        logger.exception("Audit notification failed", entity_type=instance.audit_type())


def _load_columns(instance: AuditableMixin) -> None:
    """Load expired column attributes while the row can still be read."""
    state = inspect(instance)
    for attr in state.mapper.column_attrs:
        if attr.key not in state.dict and state.key is not None:
            getattr(instance, attr.key)


def _notify_create(observer: ChangeObserver, instance: AuditableMixin) -> None:
    observer.on_created(instance)
    _notify_relations(observer, instance)


def _notify_update(observer: ChangeObserver, instance: AuditableMixin) -> None:
    state = inspect(instance)
    original: dict[str, Any] = {}
    changed: dict[str, Any] = {}

    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if not history.has_changes():
            continue
        original[attr.key] = _first(history.deleted)
        changed[attr.key] = _first(history.added)

    soft_delete_field = instance.__audit_soft_delete_field__
    if soft_delete_field in changed:
        was_deleted = original.get(soft_delete_field) is not None
        is_deleted = changed[soft_delete_field] is not None
        if was_deleted and not is_deleted:
            observer.on_restored(instance)
        elif is_deleted and not was_deleted:
            snapshot = instance.audit_snapshot()
            snapshot.update(original)
            observer.on_deleted(instance, snapshot)
            return

    if changed:
        observer.on_updated(instance, original, changed)

    _notify_relations(observer, instance)


def _notify_relations(observer: ChangeObserver, instance: AuditableMixin) -> None:
    """Report collection membership changes of the configured relations."""
    state = inspect(instance)
    _, config = observer.config_of(instance)

    for relation in config.relations:
        if relation not in state.mapper.relationships:
            logger.warning(
                "Configured audit relation is not mapped",
                entity_type=instance.audit_type(),
                relation=relation,
            )
            continue

        history = state.attrs[relation].history
        if not history.added and not history.deleted:
            continue

        observer.on_relation_changed(
            instance,
            relation,
            added=[_member(item) for item in history.added if item is not None],
            removed=[_member(item) for item in history.deleted if item is not None],
        )


def _member(item: Any) -> Any:
    """Related instances without the mixin are referenced by primary key."""
    if isinstance(item, AuditableMixin):
        return item
    state = inspect(item)
    key = state.identity or ()
    return {
        "id": key[0] if len(key) == 1 else (key or None),
        "type": type(item).__name__,
    }


def _first(values) -> Any:
    if not values:
        return None
    value = values[0]
    return None if value is NO_VALUE else value


__all__ = ["AuditableMixin", "install_audit_listeners"]
