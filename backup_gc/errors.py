"""
Error types for backup garbage collection.

Every reconciliation failure is a ReconcileError carrying a ``retryable``
flag; the controller runtime uses it to decide between requeue-with-backoff
and dropping the key.
"""


class ReconcileError(Exception):
    """Base class for failures reported by a reconciliation pass."""

    retryable: bool = True

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class KeyDecodeError(ReconcileError):
    """Queue key could not be split into namespace and name. Structural, never retried."""

    retryable = False


class CacheLookupError(ReconcileError):
    """Backup cache lookup failed for a reason other than not-found."""

    pass


class SubmissionError(ReconcileError):
    """Delete request could not be persisted."""

    pass


class BackupNotFoundError(Exception):
    """Raised by the backup cache when no backup exists for a namespace/name."""

    def __init__(self, namespace: str, name: str):
        super().__init__(f"backup {namespace}/{name} not found" if namespace else f"backup {name} not found")
        self.namespace = namespace
        self.name = name
