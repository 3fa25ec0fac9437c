"""
Unit tests for GenericController.

Tests per-item error handling and the run() lifecycle.
"""

import threading
import time
from unittest.mock import MagicMock

import pytest

from backup_gc.controller import GenericController
from backup_gc.errors import CacheLookupError, KeyDecodeError, SubmissionError
from backup_gc.workqueue import ItemExponentialFailureRateLimiter


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def controller():
    c = GenericController("test-controller", rate_limiter=ItemExponentialFailureRateLimiter(0.001, 0.01))
    c.sync_handler = MagicMock()
    return c


class TestProcessNextWorkItem:
    """Tests for process_next_work_item()."""

    def test_success_forgets_key(self, controller):
        controller.enqueue("ns/a")
        controller.queue.rate_limiter.when("ns/a")

        assert controller.process_next_work_item() is True

        controller.sync_handler.assert_called_once_with("ns/a")
        assert controller.queue.num_requeues("ns/a") == 0
        assert len(controller.queue) == 0

    @pytest.mark.parametrize("error_cls", [CacheLookupError, SubmissionError])
    def test_retryable_error_requeues(self, controller, error_cls):
        controller.sync_handler.side_effect = error_cls("transient", key="ns/a")
        controller.enqueue("ns/a")

        controller.process_next_work_item()

        assert controller.queue.num_requeues("ns/a") == 1
        assert controller.queue.get() == ("ns/a", False)

    def test_key_decode_error_dropped(self, controller):
        controller.sync_handler.side_effect = KeyDecodeError("bad key", key="a/b/c")
        controller.enqueue("a/b/c")

        controller.process_next_work_item()

        assert controller.queue.num_requeues("a/b/c") == 0
        time.sleep(0.02)
        assert len(controller.queue) == 0

    def test_unexpected_error_requeues(self, controller):
        controller.sync_handler.side_effect = ValueError("bug")
        controller.enqueue("ns/a")

        assert controller.process_next_work_item() is True

        assert controller.queue.num_requeues("ns/a") == 1

    def test_returns_false_after_shutdown(self, controller):
        controller.queue.shut_down()

        assert controller.process_next_work_item() is False
        controller.sync_handler.assert_not_called()


class TestRun:
    """Tests for run() lifecycle."""

    def test_requires_sync_handler(self):
        controller = GenericController("no-handler")

        with pytest.raises(ValueError, match="sync_handler"):
            controller.run(1, threading.Event())

    def test_waits_for_cache_sync(self, controller):
        synced = threading.Event()
        controller.cache_sync_waiters.append(synced.is_set)
        controller.enqueue("ns/a")
        stop = threading.Event()

        thread = threading.Thread(target=controller.run, args=(1, stop))
        thread.start()
        time.sleep(0.2)
        controller.sync_handler.assert_not_called()

        synced.set()
        assert wait_until(lambda: controller.sync_handler.call_count == 1)

        stop.set()
        thread.join(timeout=2)
        assert not thread.is_alive()

    def test_stop_before_sync_returns(self, controller):
        controller.cache_sync_waiters.append(lambda: False)
        stop = threading.Event()
        stop.set()

        controller.run(1, stop)

        assert controller.queue.shutting_down() is True
        controller.sync_handler.assert_not_called()

    def test_resync_runs_immediately_and_periodically(self, controller):
        controller.resync_func = MagicMock()
        controller.resync_period = 0.05
        stop = threading.Event()

        thread = threading.Thread(target=controller.run, args=(1, stop))
        thread.start()

        assert wait_until(lambda: controller.resync_func.call_count >= 3)
        assert controller.last_resync_at is not None

        stop.set()
        thread.join(timeout=2)
        assert not thread.is_alive()

    def test_resync_failure_does_not_stop_timer(self, controller):
        controller.resync_func = MagicMock(side_effect=RuntimeError("boom"))
        controller.resync_period = 0.02
        stop = threading.Event()

        thread = threading.Thread(target=controller.run, args=(1, stop))
        thread.start()

        assert wait_until(lambda: controller.resync_func.call_count >= 2)

        stop.set()
        thread.join(timeout=2)

    def test_in_flight_item_completes_on_stop(self, controller):
        """Stopping waits for the key being processed."""
        started = threading.Event()
        release = threading.Event()
        finished = []

        def slow_handler(key):
            started.set()
            release.wait(2)
            finished.append(key)

        controller.sync_handler = slow_handler
        controller.enqueue("ns/a")
        stop = threading.Event()

        thread = threading.Thread(target=controller.run, args=(1, stop))
        thread.start()
        assert started.wait(2)

        stop.set()
        time.sleep(0.05)
        assert thread.is_alive()  # still draining

        release.set()
        thread.join(timeout=2)
        assert finished == ["ns/a"]

    def test_workers_process_keys_in_parallel(self, controller):
        barrier = threading.Barrier(2, timeout=2)
        seen = []

        def handler(key):
            barrier.wait()
            seen.append(key)

        controller.sync_handler = handler
        controller.enqueue("ns/a")
        controller.enqueue("ns/b")
        stop = threading.Event()

        thread = threading.Thread(target=controller.run, args=(2, stop))
        thread.start()

        assert wait_until(lambda: len(seen) == 2)

        stop.set()
        thread.join(timeout=2)
        assert sorted(seen) == ["ns/a", "ns/b"]

    def test_run_again_after_stop(self, controller):
        """A stopped controller processes keys again when restarted."""
        stop = threading.Event()
        thread = threading.Thread(target=controller.run, args=(1, stop))
        thread.start()
        stop.set()
        thread.join(timeout=2)
        assert controller.queue.shutting_down() is True

        stop = threading.Event()
        thread = threading.Thread(target=controller.run, args=(1, stop))
        thread.start()
        assert wait_until(lambda: not controller.queue.shutting_down())
        controller.enqueue("ns/a")

        assert wait_until(lambda: controller.sync_handler.call_count == 1)

        stop.set()
        thread.join(timeout=2)
        assert not thread.is_alive()
