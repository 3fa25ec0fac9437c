"""
Backup keys: the "<namespace>/<name>" strings used for queue dedup and cache lookups.
"""

from backup_gc.errors import KeyDecodeError
from backup_gc.types import BackupRecord


def meta_namespace_key(backup: BackupRecord) -> str:
    """Encode a backup's identity. Cluster-scoped backups (empty namespace) encode as the bare name."""
    if backup.namespace:
        return f"{backup.namespace}/{backup.name}"
    return backup.name


def split_meta_namespace_key(key: str) -> tuple[str, str]:
    """
    Decode a key produced by meta_namespace_key.

    Returns:
        (namespace, name); namespace is "" for bare names

    Raises:
        KeyDecodeError: key is empty, has more than one "/", or an empty name
    """
    parts = key.split("/")
    if len(parts) == 1 and parts[0]:
        return "", parts[0]
    if len(parts) == 2 and parts[1]:
        return parts[0], parts[1]
    raise KeyDecodeError(f"unexpected key format: {key!r}", key=key)
