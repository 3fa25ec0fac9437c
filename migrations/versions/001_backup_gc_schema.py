"""Backup GC schema: backups and delete_backup_requests.

Changes:
- Create backups table (written by the backup-creation side, read by GC)
- Create delete_backup_requests table (written by GC, consumed by the deletion controller)

Revision ID: 001_backup_gc_schema
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_backup_gc_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create backup GC tables."""

    # -------------------------------------------------------------------------
    # 1. backups
    # -------------------------------------------------------------------------
    print("  Creating backups table...")

    op.create_table(
        'backups',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('namespace', sa.String(length=253), nullable=False, server_default=''),
        sa.Column('name', sa.String(length=253), nullable=False),
        sa.Column('uid', sa.String(length=64), nullable=False),
        # NULL expiration = retained forever
        sa.Column('expiration', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('namespace', 'name', name='uq_backups_namespace_name')
    )
    op.create_index('ix_backups_expiration', 'backups', ['expiration'], unique=False)

    print("  Created backups table")

    # -------------------------------------------------------------------------
    # 2. delete_backup_requests
    # -------------------------------------------------------------------------
    print("  Creating delete_backup_requests table...")

    op.create_table(
        'delete_backup_requests',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('namespace', sa.String(length=253), nullable=False, server_default=''),
        sa.Column('name', sa.String(length=253), nullable=False),
        sa.Column('backup_name', sa.String(length=253), nullable=False),
        # No FK to backups - requests outlive the backup they delete
        sa.Column('backup_uid', sa.String(length=64), nullable=False),
        sa.Column('labels', sa.JSON(), nullable=False),
        sa.Column('phase', sa.String(length=32), nullable=False, server_default='New'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('namespace', 'name', name='uq_delete_backup_requests_namespace_name')
    )
    op.create_index(
        'ix_delete_backup_requests_backup_uid', 'delete_backup_requests', ['backup_uid'], unique=False
    )

    print("  Created delete_backup_requests table")
    print("  Migration complete!")


def downgrade() -> None:
    """Drop backup GC tables."""

    print("  Dropping delete_backup_requests table...")
    op.drop_index('ix_delete_backup_requests_backup_uid', table_name='delete_backup_requests')
    op.drop_table('delete_backup_requests')

    print("  Dropping backups table...")
    op.drop_index('ix_backups_expiration', table_name='backups')
    op.drop_table('backups')

    print("  Downgrade complete!")
