"""
Integration fixtures.

Provides:
- SQLite database file with the audit table and sample business tables
- Repository and wired audit components
- Business session factory with the audit listeners installed
"""

from types import SimpleNamespace

import pytest
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Table
from sqlalchemy.orm import DeclarativeBase, relationship, sessionmaker

from audit_trail.core.config import AuditSettings
from audit_trail.core.database import (
    create_audit_engine,
    create_schema,
    create_session_factory,
)
from audit_trail.modules.audit.application.services.audit_gate import AuditGate
from audit_trail.modules.audit.application.services.audit_registry import (
    AuditRegistry,
)
from audit_trail.modules.audit.infrastructure.dependencies import configure_audit
from audit_trail.modules.audit.infrastructure.orm_listener import AuditableMixin
from audit_trail.modules.audit.infrastructure.repositories.audit_log_repository import (
    AuditLogRepository,
)


class SampleBase(DeclarativeBase):
    """Declarative base for the sample business tables."""


post_tags = Table(
    "post_tags",
    SampleBase.metadata,
    Column("post_id", ForeignKey("posts.id"), primary_key=True),
    Column("tag_id", ForeignKey("tags.id"), primary_key=True),
)


class Customer(AuditableMixin, SampleBase):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255))
    password = Column(String(255))
    age = Column(Integer)
    updated_at = Column(DateTime)
    deleted_at = Column(DateTime)


class Tag(AuditableMixin, SampleBase):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True)
    name = Column(String(50), nullable=False)


class Post(AuditableMixin, SampleBase):
    __tablename__ = "posts"
    __audit_display_fields__ = ("title",)

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)

    tags = relationship(Tag, secondary=post_tags)


@pytest.fixture
def orm_models():
    return SimpleNamespace(Customer=Customer, Tag=Tag, Post=Post)


@pytest.fixture
def settings(tmp_path):
    return AuditSettings(database_url=f"sqlite:///{tmp_path / 'audit.db'}")


@pytest.fixture
def engine(settings):
    engine = create_audit_engine(settings)
    create_schema(engine)
    SampleBase.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def audit_session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def repository(audit_session_factory):
    return AuditLogRepository(audit_session_factory)


@pytest.fixture
def audit_registry():
    registry = AuditRegistry()
    registry.register("Customer")
    registry.register("Tag")
    registry.register("Post", relations={"tags": "Tag"})
    return registry


@pytest.fixture
def components(settings, audit_session_factory, audit_registry):
    """Audit components storing synchronously into the SQLite file."""
    return configure_audit(
        settings,
        session_factory=audit_session_factory,
        registry=audit_registry,
        gate=AuditGate(),
        configure_logs=False,
    )


@pytest.fixture
def business_sessions(engine, components):
    """Session factory for the sample tables with the audit listeners installed."""
    factory = sessionmaker(bind=engine)
    remove = components.install_listeners(factory)
    yield factory
    remove()
