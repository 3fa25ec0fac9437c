"""
SQL-backed backup source for the informer.
"""

from datetime import UTC

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from backup_gc.informer import BackupSource
from backup_gc.models import Backup
from backup_gc.types import BackupRecord


def to_record(row: Backup) -> BackupRecord:
    """Convert a Backup row to an immutable BackupRecord. Naive timestamps are UTC."""
    expiration = row.expiration
    if expiration is not None and expiration.tzinfo is None:
        expiration = expiration.replace(tzinfo=UTC)
    return BackupRecord(
        namespace=row.namespace or "",
        name=row.name,
        uid=row.uid,
        expiration=expiration,
    )


class SqlBackupSource(BackupSource):
    """Lists every row of the backups table."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def list_backups(self) -> list[BackupRecord]:
        with self.session_factory() as session:
            rows = session.scalars(select(Backup).order_by(Backup.namespace, Backup.name)).all()
            return [to_record(row) for row in rows]
