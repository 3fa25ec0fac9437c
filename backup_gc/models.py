"""
Database models.

Tables:
- Backup: completed backups and their retention expiration (written upstream, read here)
- DeleteBackupRequestRow: requests handed to the deletion controller
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, Column, DateTime, Index, String, UniqueConstraint, Uuid

from backup_gc.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Backup(Base):
    """A completed backup. Owned by the backup-creation side; never modified by GC."""

    __tablename__ = "backups"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    namespace = Column(String(253), nullable=False, default="")
    name = Column(String(253), nullable=False)
    uid = Column(String(64), nullable=False)
    expiration = Column(DateTime(timezone=True), nullable=True)  # NULL = keep forever
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("namespace", "name", name="uq_backups_namespace_name"),
        Index("ix_backups_expiration", "expiration"),
    )

    def __repr__(self) -> str:
        return f"<Backup {self.namespace}/{self.name} uid={self.uid}>"


class DeleteBackupRequestRow(Base):
    """A persisted delete request. Consumed by the deletion controller."""

    __tablename__ = "delete_backup_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    namespace = Column(String(253), nullable=False, default="")
    name = Column(String(253), nullable=False)
    backup_name = Column(String(253), nullable=False)
    backup_uid = Column(String(64), nullable=False)
    labels = Column(JSON, nullable=False, default=dict)
    phase = Column(String(32), nullable=False, default="New")  # New, InProgress, Processed
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("namespace", "name", name="uq_delete_backup_requests_namespace_name"),
        Index("ix_delete_backup_requests_backup_uid", "backup_uid"),
    )

    def __repr__(self) -> str:
        return f"<DeleteBackupRequest {self.namespace}/{self.name} backup={self.backup_name}>"
