"""Audit log repository.

This module implements the synchronous AuditSink on top of SQLAlchemy along
with the query helpers auditors use to read the trail back.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from audit_trail.core.database import SessionFactory
from audit_trail.core.logging import get_logger
from audit_trail.modules.audit.domain.entities.audit_entry import AuditEntry
from audit_trail.modules.audit.domain.enums.audit_enums import ActionKind
from audit_trail.modules.audit.domain.errors.audit_errors import AuditSinkError
from audit_trail.modules.audit.domain.value_objects.changes import (
    attribute_diff_to_dict,
    relation_diff_to_dict,
)
from audit_trail.modules.audit.infrastructure.models.audit_models import (
    AuditLogModel,
)

logger = get_logger(__name__)


class AuditLogRepository:
    """
    Repository for audit log entries.

    Every call opens its own session and commits it, so an entry is stored
    independently of the business transaction that produced it.
    """

    SINK_NAME = "audit_log_repository"

    def __init__(self, session_factory: SessionFactory):
        """
        Initialize audit log repository.

        Args:
            session_factory: Factory for creating database sessions
        """
        self.session_factory = session_factory

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Audit repository operation failed", operation=operation)
            raise AuditSinkError(self.SINK_NAME, f"{operation} failed: {e}", cause=e) from e
        finally:
            session.close()

    def store(self, entry: AuditEntry) -> AuditEntry:
        """Persist an entry and return it with its storage id."""
        with self._session("store") as session:
            model = self._entity_to_model(entry)
            session.add(model)
            session.flush()
            entry_id = model.id

        logger.debug(
            "Audit entry persisted",
            entry_id=entry_id,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
        )
        return entry.with_id(entry_id)

    def get(self, entry_id: Any) -> AuditEntry | None:
        with self._session("get") as session:
            model = session.get(AuditLogModel, entry_id)
            return self._model_to_entity(model) if model else None

    def for_entity(self, entity_type: str, entity_id: Any) -> list[AuditEntry]:
        """Entries of one entity, oldest first."""
        stmt = select(AuditLogModel).where(
            AuditLogModel.entity_type == entity_type,
            AuditLogModel.entity_id == str(entity_id),
        )
        return self._fetch("for_entity", stmt)

    def by_actor(self, actor_type: str, actor_id: Any = None) -> list[AuditEntry]:
        stmt = select(AuditLogModel).where(AuditLogModel.actor_type == actor_type)
        if actor_id is not None:
            stmt = stmt.where(AuditLogModel.actor_id == str(actor_id))
        return self._fetch("by_actor", stmt)

    def by_action(self, action: ActionKind | str | int) -> list[AuditEntry]:
        """
        Entries recorded with ``action``.

        Raises:
            InvalidActionError: If the action cannot be parsed
        """
        kind = ActionKind.parse(action)
        stmt = select(AuditLogModel).where(AuditLogModel.action == int(kind))
        return self._fetch("by_action", stmt)

    def in_date_range(self, start: datetime, end: datetime) -> list[AuditEntry]:
        """Entries created between ``start`` and ``end`` inclusive."""
        stmt = select(AuditLogModel).where(
            AuditLogModel.created_at >= _utc(start),
            AuditLogModel.created_at <= _utc(end),
        )
        return self._fetch("in_date_range", stmt)

    def prune(self, retention_days: int, now: datetime | None = None) -> int:
        """
        Delete entries created on or before the retention cut-off.

        Returns:
            Number of deleted entries
        """
        if retention_days < 1:
            raise ValueError("retention_days must be at least 1")

        cutoff = _utc(now or datetime.now(UTC)) - timedelta(days=retention_days)
        with self._session("prune") as session:
            result = session.execute(
                delete(AuditLogModel).where(AuditLogModel.created_at <= cutoff)
            )
            deleted = result.rowcount or 0

        logger.info(
            "Audit logs pruned",
            retention_days=retention_days,
            cutoff=cutoff.isoformat(),
            deleted=deleted,
        )
        return deleted

    def count(self) -> int:
        with self._session("count") as session:
            return session.scalar(select(func.count()).select_from(AuditLogModel)) or 0

    def _fetch(self, operation: str, stmt) -> list[AuditEntry]:
        stmt = stmt.order_by(AuditLogModel.created_at, AuditLogModel.id)
        with self._session(operation) as session:
            return [self._model_to_entity(model) for model in session.scalars(stmt)]

    def _entity_to_model(self, entry: AuditEntry) -> AuditLogModel:
        """Convert domain entity to database model."""
        return AuditLogModel(
            entity_type=entry.entity_type,
            entity_id=str(entry.entity_id),
            action=int(entry.action),
            actor_type=entry.actor_type,
            actor_id=str(entry.actor_id) if entry.actor_id is not None else None,
            attributes=attribute_diff_to_dict(dict(entry.attributes)) or None,
            relations=relation_diff_to_dict(dict(entry.relations)) or None,
            metadata_=dict(entry.metadata) or None,
            created_at=_utc(entry.timestamp),
        )

    def _model_to_entity(self, model: AuditLogModel) -> AuditEntry:
        """Convert database model to domain entity."""
        created_at = model.created_at
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)

        return AuditEntry(
            id=model.id,
            entity_type=model.entity_type,
            entity_id=model.entity_id,
            action=model.action_kind,
            actor_type=model.actor_type,
            actor_id=model.actor_id,
            attributes=model.attributes or {},
            relations=model.relations or {},
            metadata=model.metadata_ or {},
            timestamp=created_at,
        )


def _utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


__all__ = ["AuditLogRepository"]
