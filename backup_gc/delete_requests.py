"""
Factory for delete backup requests.
"""

from backup_gc.types import BACKUP_NAME_LABEL, BACKUP_UID_LABEL, DeleteBackupRequest


def new_delete_backup_request(backup_name: str, backup_uid: str) -> DeleteBackupRequest:
    """
    Build a request to delete a backup.

    The UID travels with the name so the deletion side can refuse to act on
    a different backup that was recreated under the same name.
    """
    return DeleteBackupRequest(
        backup_name=backup_name,
        backup_uid=backup_uid,
        generate_name=f"{backup_name}-",
        labels={
            BACKUP_NAME_LABEL: backup_name,
            BACKUP_UID_LABEL: backup_uid,
        },
    )
