"""
Deduplicating, rate-limited work queue.

Guarantees relied on by the controllers:
- An item added several times before a worker picks it up is processed once.
- An item is never handed to two workers at the same time; if it is added
  while being processed, it is queued again when the worker calls done().
- Failed items are re-added after a per-item exponential backoff.
"""

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from collections.abc import Hashable
from typing import Any

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Rate Limiter
# -----------------------------------------------------------------------------


class ItemExponentialFailureRateLimiter:
    """
    Per-item exponential backoff: base_delay * 2^failures, capped at max_delay.

    Usage:
        limiter = ItemExponentialFailureRateLimiter(base_delay=0.005, max_delay=1000)
        delay = limiter.when(key)   # 0.005, 0.01, 0.02, ...
        limiter.forget(key)         # reset after success
    """

    def __init__(self, base_delay: float = 0.005, max_delay: float = 1000.0):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def when(self, item: Hashable) -> float:
        with self._lock:
            exp = self._failures.get(item, 0)
            self._failures[item] = exp + 1

        # Past 2^62 the delay is far beyond any sane max_delay.
        if exp > 62:
            return self.max_delay
        return min(self.base_delay * (2**exp), self.max_delay)

    def num_requeues(self, item: Hashable) -> int:
        with self._lock:
            return self._failures.get(item, 0)

    def forget(self, item: Hashable) -> None:
        with self._lock:
            self._failures.pop(item, None)


# -----------------------------------------------------------------------------
# Queue
# -----------------------------------------------------------------------------


class RateLimitingQueue:
    """Thread-safe work queue with dedup, delayed adds and rate-limited requeues."""

    def __init__(self, name: str, rate_limiter: ItemExponentialFailureRateLimiter | None = None):
        self.name = name
        self.rate_limiter = rate_limiter or ItemExponentialFailureRateLimiter()

        self._cond = threading.Condition()
        self._queue: deque[Hashable] = deque()
        self._dirty: set[Hashable] = set()
        self._processing: set[Hashable] = set()
        self._shutting_down = False

        # Delayed items: heap of (ready_at, seq, item); _ready_at tracks the
        # earliest pending time per item so stale heap entries can be skipped.
        self._waiting: list[tuple[float, int, Hashable]] = []
        self._ready_at: dict[Hashable, float] = {}
        self._seq = itertools.count()

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def add(self, item: Hashable) -> None:
        with self._cond:
            self._add_locked(item)

    def add_after(self, item: Hashable, delay: float) -> None:
        """Add the item once ``delay`` seconds have passed."""
        if delay <= 0:
            self.add(item)
            return

        with self._cond:
            if self._shutting_down:
                return
            ready_at = time.monotonic() + delay
            current = self._ready_at.get(item)
            if current is not None and current <= ready_at:
                return
            self._ready_at[item] = ready_at
            heapq.heappush(self._waiting, (ready_at, next(self._seq), item))
            self._cond.notify_all()

    def add_rate_limited(self, item: Hashable) -> None:
        """Re-add a failed item after its backoff delay. Dropped once shutting down."""
        if self.shutting_down():
            return
        self.add_after(item, self.rate_limiter.when(item))

    def forget(self, item: Hashable) -> None:
        """Clear the item's failure history."""
        self.rate_limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return self.rate_limiter.num_requeues(item)

    def get(self) -> tuple[Any, bool]:
        """
        Block until an item is ready.

        Returns:
            (item, False) for work, or (None, True) once the queue is shut
            down and drained
        """
        with self._cond:
            while True:
                self._promote_ready_locked()
                if self._queue:
                    break
                if self._shutting_down:
                    return None, True
                self._cond.wait(self._next_ready_in_locked())

            item = self._queue.popleft()
            self._processing.add(item)
            self._dirty.discard(item)
            return item, False

    def done(self, item: Hashable) -> None:
        """Mark processing finished; requeue if the item was added meanwhile."""
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
                self._cond.notify()

    def shut_down(self) -> None:
        """Stop accepting items and wake every waiting worker."""
        with self._cond:
            self._shutting_down = True
            self._waiting.clear()
            self._ready_at.clear()
            self._cond.notify_all()

    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def _add_locked(self, item: Hashable) -> None:
        if self._shutting_down:
            return
        if item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            return
        self._queue.append(item)
        self._cond.notify()

    def _promote_ready_locked(self) -> None:
        now = time.monotonic()
        while self._waiting and self._waiting[0][0] <= now:
            ready_at, _, item = heapq.heappop(self._waiting)
            if self._ready_at.get(item) != ready_at:
                continue
            del self._ready_at[item]
            self._add_locked(item)

    def _next_ready_in_locked(self) -> float | None:
        if not self._waiting:
            return None
        return max(self._waiting[0][0] - time.monotonic(), 0)
