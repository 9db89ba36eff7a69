"""Audit database models.

This module defines the SQLAlchemy model backing the ``audit_logs`` table.
Rows are append-only: the repository inserts and prunes them but never
updates one.
"""

from sqlalchemy import JSON, BigInteger, Column, DateTime, Index, Integer, SmallInteger, String
from sqlalchemy.sql import func

from audit_trail.core.database import Base
from audit_trail.modules.audit.domain.enums.audit_enums import ActionKind


class AuditLogModel(Base):
    """
    Database model for audit log entries.

    Entity and actor identifiers are stored as strings so integer and UUID
    keys share one column. ``metadata`` is a reserved declarative name, so
    the column is mapped to the ``metadata_`` attribute.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_entity", "entity_type", "entity_id"),
        Index("idx_actor", "actor_type", "actor_id"),
        Index("idx_action", "action"),
        Index("idx_created_at", "created_at"),
        Index("idx_entity_action", "entity_type", "entity_id", "action"),
    )

    id = Column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    # Audited entity
    entity_type = Column(String(255), nullable=False)
    entity_id = Column(String(64), nullable=False)

    action = Column(SmallInteger, nullable=False)

    # Actor
    actor_type = Column(String(50), nullable=False)
    actor_id = Column(String(64), nullable=True)

    # Change data
    attributes = Column(JSON, nullable=True)
    relations = Column(JSON, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    @property
    def action_kind(self) -> ActionKind:
        return ActionKind(self.action)

    def __repr__(self) -> str:
        return (
            f"<AuditLogModel id={self.id} {self.entity_type}#{self.entity_id} "
            f"action={self.action}>"
        )


__all__ = ["AuditLogModel"]
