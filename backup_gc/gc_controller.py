"""
Garbage collection controller.

Creates a DeleteBackupRequest for every backup whose retention has expired.

Keys reach the queue two ways:
- cache add/update notifications, enqueued unconditionally
- a periodic rescan of the whole cache, which catches anything a
  notification missed (including backups that existed before startup)

Expiration is re-derived from the cache on every pass; submitted requests are
not tracked. A backup can therefore get more than one delete request across
passes (retries, overlapping notification and rescan), and the deletion side
must treat repeated requests for the same backup UID as idempotent.
"""

import logging
import threading
from dataclasses import dataclass, field

from backup_gc.cache import BackupCache, BackupEventHandler
from backup_gc.client import DeleteBackupRequestClient
from backup_gc.clock import Clock, RealClock
from backup_gc.controller import GenericController
from backup_gc.delete_requests import new_delete_backup_request
from backup_gc.errors import BackupNotFoundError, CacheLookupError, SubmissionError
from backup_gc.keys import meta_namespace_key, split_meta_namespace_key
from backup_gc.policy import is_expired
from backup_gc.types import BackupRecord
from backup_gc.workqueue import ItemExponentialFailureRateLimiter

logger = logging.getLogger(__name__)

CONTROLLER_NAME = "gc-controller"

# Requested sync periods below this are raised to it.
MIN_SYNC_PERIOD = 60.0
DEFAULT_SYNC_PERIOD = 3600.0


@dataclass
class GCStats:
    """Counters for reconciliation passes, safe to update from worker threads."""

    processed: int = 0
    expired: int = 0
    submitted: int = 0
    failed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def increment(self, counter: str) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + 1)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "processed": self.processed,
                "expired": self.expired,
                "submitted": self.submitted,
                "failed": self.failed,
            }


class GCController(GenericController, BackupEventHandler):
    """Reconciles backup keys into delete requests for expired backups."""

    def __init__(
        self,
        backup_cache: BackupCache,
        delete_request_client: DeleteBackupRequestClient,
        sync_period: float = DEFAULT_SYNC_PERIOD,
        clock: Clock | None = None,
        rate_limiter: ItemExponentialFailureRateLimiter | None = None,
    ):
        super().__init__(CONTROLLER_NAME, rate_limiter=rate_limiter)

        if sync_period < MIN_SYNC_PERIOD:
            logger.warning(
                f"Provided GC sync period {sync_period}s is too short. Setting to {MIN_SYNC_PERIOD:.0f}s",
                extra={
                    "event": "sync_period_raised",
                    "requested_sync_period": sync_period,
                    "sync_period": MIN_SYNC_PERIOD,
                },
            )
            sync_period = MIN_SYNC_PERIOD

        self.sync_period = sync_period
        self.backup_cache = backup_cache
        self.delete_request_client = delete_request_client
        self.clock = clock or RealClock()
        self.stats = GCStats()

        self.sync_handler = self.process_queue_item
        self.cache_sync_waiters.append(backup_cache.has_synced)
        self.resync_period = sync_period
        self.resync_func = self.enqueue_all_backups

        backup_cache.add_event_handler(self)

    # -------------------------------------------------------------------------
    # Enqueue strategies
    # -------------------------------------------------------------------------

    def on_added(self, obj: BackupRecord | str) -> None:
        self._enqueue_backup(obj)

    def on_updated(self, old: BackupRecord | str, new: BackupRecord | str) -> None:
        self._enqueue_backup(new)

    def _enqueue_backup(self, obj: BackupRecord | str) -> None:
        key = obj if isinstance(obj, str) else meta_namespace_key(obj)
        self.enqueue(key)

    def enqueue_all_backups(self) -> int:
        """
        Enqueue every cached backup for an expiration check.

        Returns:
            Number of keys enqueued; 0 if listing failed (the next tick retries)
        """
        logger.debug("gc-controller enqueue all backups", extra={"event": "enqueue_all"})

        try:
            backups = self.backup_cache.list()
        except Exception as e:
            logger.error(f"Error listing backups: {e}", exc_info=True, extra={"event": "list_backups_failed"})
            return 0

        for backup in backups:
            self._enqueue_backup(backup)

        logger.debug(f"Enqueued {len(backups)} backups", extra={"event": "enqueue_all_complete", "enqueued": len(backups)})
        return len(backups)

    # -------------------------------------------------------------------------
    # Reconciler
    # -------------------------------------------------------------------------

    def process_queue_item(self, key: str) -> None:
        """
        Reconcile one backup key.

        Raises:
            KeyDecodeError: Key is malformed (not retried)
            CacheLookupError: Cache lookup failed (retried)
            SubmissionError: Delete request could not be persisted (retried)
        """
        self.stats.increment("processed")
        try:
            self._reconcile(key)
        except Exception:
            self.stats.increment("failed")
            raise

    def _reconcile(self, key: str) -> None:
        namespace, name = split_meta_namespace_key(key)

        try:
            backup = self.backup_cache.get(namespace, name)
        except BackupNotFoundError:
            logger.debug("Unable to find backup", extra={"event": "backup_not_found", "backup": key})
            return
        except Exception as e:
            raise CacheLookupError(f"error getting backup {key}: {e}", key=key) from e

        log_extra = {"backup": key, "expiration": backup.expiration}

        if not is_expired(backup, self.clock.now()):
            logger.debug("Backup has not expired yet, skipping", extra={"event": "backup_not_expired", **log_extra})
            return

        self.stats.increment("expired")
        logger.info(
            "Backup has expired. Creating a DeleteBackupRequest.",
            extra={"event": "backup_expired", "backup_uid": backup.uid, **log_extra},
        )

        request = new_delete_backup_request(backup.name, backup.uid)

        try:
            created = self.delete_request_client.create(namespace, request)
        except Exception as e:
            raise SubmissionError(f"error creating DeleteBackupRequest for {key}: {e}", key=key) from e

        self.stats.increment("submitted")
        logger.debug(
            f"Created DeleteBackupRequest {created.name}",
            extra={"event": "delete_request_created", "delete_request": created.name, **log_extra},
        )

    def preview_expired(self) -> list[BackupRecord]:
        """Cached backups that are expired right now, without submitting anything."""
        now = self.clock.now()
        return [b for b in self.backup_cache.list() if is_expired(b, now)]
