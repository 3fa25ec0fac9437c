"""
Data types shared by the cache, the garbage collector and the persistence layer.
"""

from dataclasses import dataclass, field
from datetime import datetime

# Labels stamped on every delete request so the deletion side can find
# requests for a backup without parsing generated names.
BACKUP_NAME_LABEL = "backup-gc.io/backup-name"
BACKUP_UID_LABEL = "backup-gc.io/backup-uid"


@dataclass(frozen=True)
class BackupRecord:
    """
    Cached view of a completed backup.

    Attributes:
        namespace: Namespace the backup lives in ("" for cluster-scoped)
        name: Human-readable backup name, unique within the namespace
        uid: Stable unique ID; changes if the backup is recreated under the same name
        expiration: When retention ends; None means the backup is kept forever
    """

    namespace: str
    name: str
    uid: str
    expiration: datetime | None = None


@dataclass(frozen=True)
class DeleteBackupRequest:
    """
    Request for the deletion controller to remove one backup.

    namespace and name are assigned by the client that persists the request.
    """

    backup_name: str
    backup_uid: str
    generate_name: str
    labels: dict[str, str] = field(default_factory=dict)
    namespace: str | None = None
    name: str | None = None
