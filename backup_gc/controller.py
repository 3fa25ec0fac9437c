"""
Generic controller runtime.

Owns a RateLimitingQueue and a pool of worker threads that feed queue keys to
a sync handler. Optionally runs a resync function on a fixed period. Work
only starts once every cache-sync waiter reports ready.
"""

import logging
import threading
import time
from collections.abc import Callable

from backup_gc.errors import ReconcileError
from backup_gc.logging_config import backup_key_context, controller_context
from backup_gc.workqueue import ItemExponentialFailureRateLimiter, RateLimitingQueue

logger = logging.getLogger(__name__)

# How often run() re-checks the cache-sync waiters while waiting to start.
CACHE_SYNC_POLL_SECONDS = 0.1


class GenericController:
    """
    Queue + worker pool + periodic resync.

    Subclasses (or callers) set:
        sync_handler: called with each key; raise to report failure
        cache_sync_waiters: callables returning True once caches are loaded
        resync_func / resync_period: optional periodic callback
    """

    def __init__(
        self,
        name: str,
        rate_limiter: ItemExponentialFailureRateLimiter | None = None,
    ):
        self.name = name
        self.queue = RateLimitingQueue(name, rate_limiter=rate_limiter)
        self.sync_handler: Callable[[str], None] | None = None
        self.cache_sync_waiters: list[Callable[[], bool]] = []
        self.resync_func: Callable[[], object] | None = None
        self.resync_period: float = 0
        self.last_resync_at: float | None = None

    def enqueue(self, key: str) -> None:
        self.queue.add(key)

    def run(self, workers: int, stop_event: threading.Event) -> None:
        """
        Run until stop_event is set.

        Blocks for cache sync, then starts ``workers`` worker threads and the
        resync thread. On stop the queue is shut down and in-flight keys are
        allowed to finish before returning.
        """
        if self.sync_handler is None:
            raise ValueError(f"{self.name}: sync_handler is not set")

        # A previous run shut its queue down; keys enqueued since then are
        # picked up again by the first resync.
        if self.queue.shutting_down():
            self.queue = RateLimitingQueue(self.name, rate_limiter=self.queue.rate_limiter)

        with controller_context(self.name):
            logger.info(f"Starting controller {self.name}", extra={"event": "controller_starting", "workers": workers})

            logger.info("Waiting for caches to sync", extra={"event": "cache_sync_wait"})
            if not self._wait_for_cache_sync(stop_event):
                logger.warning("Stopped before caches synced", extra={"event": "cache_sync_aborted"})
                self.queue.shut_down()
                return
            logger.info("Caches are synced", extra={"event": "cache_synced"})

            threads = [
                threading.Thread(target=self._run_worker, name=f"{self.name}-worker-{i}", daemon=True)
                for i in range(workers)
            ]
            if self.resync_func is not None and self.resync_period > 0:
                threads.append(
                    threading.Thread(
                        target=self._run_resync,
                        args=(stop_event,),
                        name=f"{self.name}-resync",
                        daemon=True,
                    )
                )

            for thread in threads:
                thread.start()

            stop_event.wait()

            logger.info(f"Shutting down controller {self.name}", extra={"event": "controller_stopping"})
            self.queue.shut_down()
            for thread in threads:
                thread.join()
            logger.info(f"Controller {self.name} stopped", extra={"event": "controller_stopped"})

    def _wait_for_cache_sync(self, stop_event: threading.Event) -> bool:
        while not all(waiter() for waiter in self.cache_sync_waiters):
            if stop_event.wait(CACHE_SYNC_POLL_SECONDS):
                return False
        return True

    def _run_worker(self) -> None:
        with controller_context(self.name):
            while self.process_next_work_item():
                pass

    def _run_resync(self, stop_event: threading.Event) -> None:
        with controller_context(self.name):
            while not stop_event.is_set():
                try:
                    self.resync_func()
                except Exception:
                    logger.exception("Resync function failed", extra={"event": "resync_failed"})
                self.last_resync_at = time.time()
                stop_event.wait(self.resync_period)

    def process_next_work_item(self) -> bool:
        """
        Handle one key from the queue.

        Returns:
            False once the queue has shut down, True otherwise
        """
        key, shutdown = self.queue.get()
        if shutdown:
            return False

        try:
            with backup_key_context(key):
                self._handle(key)
        finally:
            self.queue.done(key)
        return True

    def _handle(self, key: str) -> None:
        try:
            self.sync_handler(key)
        except ReconcileError as e:
            if not e.retryable:
                logger.error(
                    f"Dropping key {key}: {e}",
                    extra={"event": "key_dropped", "key": key},
                )
                self.queue.forget(key)
                return
            logger.error(
                f"Error in sync handler, re-adding item to queue: {e}",
                exc_info=True,
                extra={"event": "key_requeued", "key": key, "requeues": self.queue.num_requeues(key)},
            )
            self.queue.add_rate_limited(key)
            return
        except Exception as e:
            logger.exception(
                f"Unexpected error in sync handler, re-adding item to queue: {e}",
                extra={"event": "key_requeued", "key": key, "requeues": self.queue.num_requeues(key)},
            )
            self.queue.add_rate_limited(key)
            return

        self.queue.forget(key)
