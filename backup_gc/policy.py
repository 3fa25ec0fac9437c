"""
Expiration policy for backups.
"""

from datetime import UTC, datetime

from backup_gc.types import BackupRecord


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps (e.g. read back from SQLite) are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def is_expired(backup: BackupRecord, now: datetime) -> bool:
    """
    Decide whether a backup's retention has ended.

    A backup without an expiration never expires. Otherwise it is expired
    once ``now`` reaches the expiration, inclusive at equality.
    """
    if backup.expiration is None:
        return False
    return _as_utc(backup.expiration) <= _as_utc(now)
