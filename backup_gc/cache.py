"""
In-memory watch cache for backups.

Single writer (the informer), many concurrent readers (controller workers).
Records are immutable, so a get() hands back a consistent snapshot without
holding the lock afterwards.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable

from backup_gc.errors import BackupNotFoundError
from backup_gc.keys import meta_namespace_key
from backup_gc.types import BackupRecord

logger = logging.getLogger(__name__)


class BackupEventHandler(ABC):
    """Receives change notifications from the backup cache."""

    @abstractmethod
    def on_added(self, obj: BackupRecord) -> None:
        pass

    @abstractmethod
    def on_updated(self, old: BackupRecord, new: BackupRecord) -> None:
        pass


class BackupCache:
    """Thread-safe map of backup key -> BackupRecord with change notifications."""

    def __init__(self):
        self._items: dict[str, BackupRecord] = {}
        self._handlers: list[BackupEventHandler] = []
        self._lock = threading.RLock()
        self._synced = threading.Event()

    def add_event_handler(self, handler: BackupEventHandler) -> None:
        with self._lock:
            self._handlers.append(handler)

    def has_synced(self) -> bool:
        """True once the first full listing has been loaded."""
        return self._synced.is_set()

    def wait_for_sync(self, timeout: float | None = None) -> bool:
        return self._synced.wait(timeout)

    def get(self, namespace: str, name: str) -> BackupRecord:
        """
        Look up a backup.

        Raises:
            BackupNotFoundError: No backup cached under namespace/name
        """
        key = f"{namespace}/{name}" if namespace else name
        with self._lock:
            backup = self._items.get(key)
        if backup is None:
            raise BackupNotFoundError(namespace, name)
        return backup

    def list(self) -> list[BackupRecord]:
        with self._lock:
            return list(self._items.values())

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._items.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def upsert(self, backup: BackupRecord) -> None:
        """Insert or update a single backup and notify handlers."""
        key = meta_namespace_key(backup)
        with self._lock:
            old = self._items.get(key)
            self._items[key] = backup
            handlers = list(self._handlers)

        if old is None:
            self._notify_added(handlers, backup)
        elif old != backup:
            self._notify_updated(handlers, old, backup)

    def delete(self, namespace: str, name: str) -> None:
        key = f"{namespace}/{name}" if namespace else name
        with self._lock:
            self._items.pop(key, None)

    def replace(self, backups: Iterable[BackupRecord]) -> None:
        """
        Replace the cache contents with a full listing.

        Fires on_added for new keys and on_updated for changed records.
        Keys missing from the listing are dropped silently. The first call
        marks the cache as synced.
        """
        incoming = {meta_namespace_key(b): b for b in backups}

        with self._lock:
            previous = self._items
            self._items = incoming
            handlers = list(self._handlers)

        added = [b for key, b in incoming.items() if key not in previous]
        updated = [(previous[key], b) for key, b in incoming.items() if key in previous and previous[key] != b]
        removed = len(previous.keys() - incoming.keys())

        self._synced.set()

        logger.debug(
            f"Backup cache replaced: {len(added)} added, {len(updated)} updated, {removed} removed",
            extra={"event": "cache_replaced"},
        )

        for backup in added:
            self._notify_added(handlers, backup)
        for old, new in updated:
            self._notify_updated(handlers, old, new)

    # Handler failures must not stop the informer or skip other handlers.
    def _notify_added(self, handlers: list[BackupEventHandler], backup: BackupRecord) -> None:
        for handler in handlers:
            try:
                handler.on_added(backup)
            except Exception:
                logger.exception(f"Event handler failed on add of {meta_namespace_key(backup)}")

    def _notify_updated(self, handlers: list[BackupEventHandler], old: BackupRecord, new: BackupRecord) -> None:
        for handler in handlers:
            try:
                handler.on_updated(old, new)
            except Exception:
                logger.exception(f"Event handler failed on update of {meta_namespace_key(new)}")
