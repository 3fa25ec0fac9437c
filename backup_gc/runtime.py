"""
Process-level wiring for the garbage collector.

GCRuntime explicitly owns every long-lived object (engine, cache, informer,
controller) and their threads. Nothing here is module-global, so tests and
the CLI can build as many independent runtimes as they need.
"""

import logging
import threading
from datetime import UTC, datetime

from backup_gc.cache import BackupCache
from backup_gc.client import DeleteBackupRequestClient, get_delete_request_client
from backup_gc.clock import Clock
from backup_gc.config import Settings
from backup_gc.database import create_engine_for_url, create_session_factory
from backup_gc.gc_controller import GCController
from backup_gc.informer import BackupInformer, BackupSource
from backup_gc.store import SqlBackupSource
from backup_gc.workqueue import ItemExponentialFailureRateLimiter

logger = logging.getLogger(__name__)


class GCRuntime:
    """
    Owns the informer and the GC controller and their lifecycle.

    Usage:
        runtime = GCRuntime.from_settings(get_settings())
        runtime.start()
        ...
        runtime.stop()
    """

    def __init__(
        self,
        source: BackupSource,
        client: DeleteBackupRequestClient,
        sync_period: float,
        workers: int = 1,
        poll_interval: float = 30,
        clock: Clock | None = None,
        rate_limiter: ItemExponentialFailureRateLimiter | None = None,
    ):
        self.cache = BackupCache()
        self.informer = BackupInformer(source, self.cache, poll_interval=poll_interval)
        self.controller = GCController(
            self.cache,
            client,
            sync_period=sync_period,
            clock=clock,
            rate_limiter=rate_limiter,
        )
        self.workers = workers
        self._stop_event = threading.Event()
        self._controller_thread: threading.Thread | None = None

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock | None = None) -> "GCRuntime":
        engine = create_engine_for_url(
            settings.DATABASE_URL,
            connect_timeout=settings.DB_CONNECT_TIMEOUT_SECONDS,
            statement_timeout=settings.DB_STATEMENT_TIMEOUT_SECONDS,
        )
        session_factory = create_session_factory(engine)
        return cls(
            source=SqlBackupSource(session_factory),
            client=get_delete_request_client(settings.DELETE_REQUEST_CLIENT, session_factory),
            sync_period=settings.GC_SYNC_PERIOD_SECONDS,
            workers=settings.GC_WORKERS,
            poll_interval=settings.INFORMER_POLL_SECONDS,
            clock=clock,
            rate_limiter=ItemExponentialFailureRateLimiter(
                base_delay=settings.RETRY_BASE_DELAY_SECONDS,
                max_delay=settings.RETRY_MAX_DELAY_SECONDS,
            ),
        )

    @property
    def running(self) -> bool:
        return self._controller_thread is not None and self._controller_thread.is_alive()

    def start(self) -> None:
        """Start the informer, then the controller (which waits for the first cache sync)."""
        if self.running:
            return

        self._stop_event.clear()
        self.informer.start()
        self._controller_thread = threading.Thread(
            target=self.controller.run,
            args=(self.workers, self._stop_event),
            name="gc-controller",
            daemon=True,
        )
        self._controller_thread.start()
        logger.info("GC runtime started", extra={"event": "runtime_started", "workers": self.workers})

    def stop(self, timeout: float | None = 30) -> None:
        """Stop the controller (draining in-flight keys), then the informer."""
        self._stop_event.set()
        if self._controller_thread:
            self._controller_thread.join(timeout=timeout)
        self.informer.stop()
        logger.info("GC runtime stopped", extra={"event": "runtime_stopped"})

    def request_stop(self) -> None:
        """Ask the runtime to stop without blocking (safe from signal handlers)."""
        self._stop_event.set()

    def wait(self) -> None:
        """Block until stop() is called from another thread or a signal handler."""
        self._stop_event.wait()

    def status(self) -> dict:
        last_resync = self.controller.last_resync_at
        return {
            "running": self.running,
            "cache_synced": self.cache.has_synced(),
            "backups_cached": len(self.cache),
            "queue_depth": len(self.controller.queue),
            "workers": self.workers,
            "sync_period_seconds": self.controller.sync_period,
            "last_resync_at": (
                datetime.fromtimestamp(last_resync, tz=UTC) if last_resync is not None else None
            ),
            "stats": self.controller.stats.snapshot(),
        }
