"""Celery configuration and initialization."""
from celery import Celery
from celery.schedules import crontab
from kombu import Exchange, Queue

from audit_trail.core.config import get_settings

settings = get_settings()

# Create Celery instance
celery_app = Celery(
    "audit_trail",
    broker=settings.broker_url,
    backend=settings.result_backend,
    include=["audit_trail.tasks.audit_tasks"],
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,  # 1 hour
    task_default_queue=settings.queue_name,
    task_always_eager=settings.task_always_eager,  # For testing
    task_eager_propagates=settings.task_always_eager,
)

audit_exchange = Exchange("audit", type="direct")

celery_app.conf.task_queues = (
    Queue(settings.queue_name, audit_exchange, routing_key=settings.queue_name),
)

celery_app.conf.task_routes = {
    "audit_trail.tasks.audit_tasks.*": {"queue": settings.queue_name},
}

celery_app.conf.task_annotations = {
    "audit_trail.tasks.audit_tasks.persist_audit_entry": {
        "max_retries": 3,
        "default_retry_delay": 30,
    },
    "audit_trail.tasks.audit_tasks.prune_audit_logs": {
        "rate_limit": "1/h",
    },
}

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    "prune-audit-logs": {
        "task": "audit_trail.tasks.audit_tasks.prune_audit_logs",
        "schedule": crontab(hour=3, minute=0),  # Daily at 3 AM
    },
}

__all__ = ["celery_app"]
