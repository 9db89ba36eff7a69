"""Audit Log Table

Revision ID: 001_audit_logs
Revises: 
Create Date: 2026-10-18 12:00:00.000000

"""
import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = '001_audit_logs'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create the audit log table."""

    op.create_table('audit_logs',
        sa.Column('id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), primary_key=True, autoincrement=True),
        sa.Column('entity_type', sa.String(255), nullable=False),
        sa.Column('entity_id', sa.String(64), nullable=False),
        sa.Column('action', sa.SmallInteger(), nullable=False),
        sa.Column('actor_type', sa.String(50), nullable=False),
        sa.Column('actor_id', sa.String(64), nullable=True),
        sa.Column('attributes', sa.JSON(), nullable=True),
        sa.Column('relations', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )

    # Lookup indexes
    op.create_index('idx_entity', 'audit_logs', ['entity_type', 'entity_id'])
    op.create_index('idx_actor', 'audit_logs', ['actor_type', 'actor_id'])
    op.create_index('idx_action', 'audit_logs', ['action'])
    op.create_index('idx_created_at', 'audit_logs', ['created_at'])
    op.create_index('idx_entity_action', 'audit_logs', ['entity_type', 'entity_id', 'action'])


def downgrade():
    """Drop the audit log table."""
    op.drop_index('idx_entity_action', table_name='audit_logs')
    op.drop_index('idx_created_at', table_name='audit_logs')
    op.drop_index('idx_action', table_name='audit_logs')
    op.drop_index('idx_actor', table_name='audit_logs')
    op.drop_index('idx_entity', table_name='audit_logs')
    op.drop_table('audit_logs')
