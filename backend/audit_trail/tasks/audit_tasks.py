"""Audit background tasks.

Queued persistence of audit entries and the daily retention pruning.
"""

import json
from typing import Any

from celery import Task
from kombu.exceptions import KombuError

from audit_trail.core.config import get_settings
from audit_trail.core.database import (
    create_audit_engine,
    create_session_factory,
    json_dumps,
)
from audit_trail.core.logging import bound_context, get_logger
from audit_trail.modules.audit.domain.entities.audit_entry import AuditEntry
from audit_trail.modules.audit.domain.errors.audit_errors import AuditSinkError
from audit_trail.modules.audit.infrastructure.repositories.audit_log_repository import (
    AuditLogRepository,
)
from audit_trail.tasks import celery_app

logger = get_logger(__name__)

_repository: AuditLogRepository | None = None


def get_repository() -> AuditLogRepository:
    """Repository used by the workers, built from settings on first use."""
    global _repository  # noqa: PLW0603 - Lazily initialized worker repository

    if _repository is None:
        engine = create_audit_engine(get_settings())
        _repository = AuditLogRepository(create_session_factory(engine))
    return _repository


def set_repository(repository: AuditLogRepository | None) -> None:
    """Override the worker repository (None resets to the settings default)."""
    global _repository  # noqa: PLW0603 - Lazily initialized worker repository

    _repository = repository


class AuditTask(Task):
    """Base class for audit tasks with common functionality."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Called when task fails."""
        logger.error("Audit task failed", task_id=task_id, task=self.name, error=str(exc))

    def on_success(self, retval, task_id, args, kwargs):
        """Called when task succeeds."""
        logger.debug("Audit task completed", task_id=task_id, task=self.name)


@celery_app.task(
    bind=True, base=AuditTask, name="audit_trail.tasks.audit_tasks.persist_audit_entry"
)
def persist_audit_entry(self, payload: dict[str, Any]) -> dict[str, Any]:
    """Store an entry serialized with ``AuditEntry.to_dict``."""
    entry = AuditEntry.from_dict(payload)
    with bound_context(task_id=self.request.id, entity_type=entry.entity_type):
        try:
            stored = get_repository().store(entry)
        except AuditSinkError as e:
            if e.retryable and self.request.retries < self.max_retries:
                raise self.retry(exc=e) from e
            raise

    return {
        "id": stored.id,
        "entity_type": stored.entity_type,
        "entity_id": stored.entity_id,
        "action": int(stored.action),
    }


@celery_app.task(
    bind=True, base=AuditTask, name="audit_trail.tasks.audit_tasks.prune_audit_logs"
)
def prune_audit_logs(self, retention_days: int | None = None) -> dict[str, Any]:
    """Delete entries older than the retention period."""
    days = retention_days or get_settings().retention_days
    deleted = get_repository().prune(days)
    return {"deleted": deleted, "retention_days": days}


class CeleryAuditDispatcher:
    """AuditDispatcher sending entries to the ``persist_audit_entry`` task."""

    def __init__(self, queue_name: str = "audit", task: Any = None):
        self.queue_name = queue_name
        self.task = task or persist_audit_entry

    def enqueue(self, entry: AuditEntry) -> None:
        # Attribute values may hold dates or decimals; the payload must be plain JSON
        payload = json.loads(json_dumps(entry.to_dict()))
        try:
            self.task.apply_async(args=[payload], queue=self.queue_name)
        except (KombuError, OSError) as e:
            raise AuditSinkError(
                "celery",
                f"Failed to enqueue audit entry: {e}",
                entity_type=entry.entity_type,
                entity_id=str(entry.entity_id),
                cause=e,
            ) from e

        logger.debug(
            "Audit entry dispatched",
            queue=self.queue_name,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
        )


__all__ = [
    "CeleryAuditDispatcher",
    "get_repository",
    "persist_audit_entry",
    "prune_audit_logs",
    "set_repository",
]
