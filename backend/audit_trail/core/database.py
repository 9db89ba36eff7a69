"""Database primitives shared by the audit persistence layer.

The audit trail writes through its own short-lived sessions so that storing
an entry never joins (or re-opens) the business transaction that produced it.
"""

import json
from collections.abc import Callable
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from audit_trail.core.config import AuditSettings
from audit_trail.core.logging import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[], Session]


def json_dumps(value: Any) -> str:
    """JSON serializer for JSON columns; dates, decimals and UUIDs become strings."""
    return json.dumps(value, default=str)


class Base(DeclarativeBase):
    """Declarative base for audit trail tables."""


def create_audit_engine(settings: AuditSettings, **engine_kwargs) -> Engine:
    """Create the engine used for audit persistence."""
    engine_kwargs.setdefault("json_serializer", json_dumps)
    engine = create_engine(settings.database_url, **engine_kwargs)
    logger.debug("Audit engine created", dialect=engine.dialect.name)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to ``engine``."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_schema(engine: Engine) -> None:
    """Create audit tables (used by tests and local tooling)."""
    from audit_trail.modules.audit.infrastructure.models import audit_models  # noqa: F401

    Base.metadata.create_all(engine)
