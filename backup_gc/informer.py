"""
Polling informer that keeps the backup cache current.

Periodically lists every backup from a BackupSource and hands the listing to
BackupCache.replace(), which turns the difference into add/update events.
"""

import logging
import threading
from abc import ABC, abstractmethod

from backup_gc.cache import BackupCache
from backup_gc.types import BackupRecord

logger = logging.getLogger(__name__)


class BackupSource(ABC):
    """Authoritative store of backup records."""

    @abstractmethod
    def list_backups(self) -> list[BackupRecord]:
        pass


class BackupInformer:
    """
    Background thread feeding a BackupCache from a BackupSource.

    Usage:
        informer = BackupInformer(source, cache, poll_interval=30)
        informer.start()
        ...
        informer.stop()
    """

    def __init__(self, source: BackupSource, cache: BackupCache, poll_interval: float = 30):
        self.source = source
        self.cache = cache
        self.poll_interval = poll_interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def has_synced(self) -> bool:
        return self.cache.has_synced()

    def start(self) -> None:
        """Start polling in a daemon thread."""
        if self._thread and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="backup-informer", daemon=True)
        self._thread.start()
        logger.info(f"Backup informer started (poll every {self.poll_interval}s)")

    def stop(self, timeout: float = 5) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
        logger.info("Backup informer stopped")

    def poll_once(self) -> bool:
        """
        List backups and refresh the cache.

        Returns:
            True if the listing succeeded, False if it failed and was logged
        """
        try:
            backups = self.source.list_backups()
        except Exception as e:
            logger.error(f"Error listing backups from source: {e}", exc_info=True, extra={"event": "informer_list_failed"})
            return False

        self.cache.replace(backups)
        return True

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.poll_once()
            self._stop_event.wait(timeout=self.poll_interval)
