"""Tests for backoff delays and retry timers."""

import pytest

from offline_sync.core import RetryScheduler
from offline_sync.scheduler import ManualClock, VirtualTaskScheduler


class TestRetryScheduler:
    """Test backoff table lookups and timer handling."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = ManualClock()
        self.task_scheduler = VirtualTaskScheduler(self.clock)
        self.online = True
        self.retry = RetryScheduler(self.task_scheduler, is_online=lambda: self.online)
        self.fired = []

    def test_delay_indexed_by_retry_count(self):
        assert [self.retry.delay_for(n) for n in range(1, 6)] == [1.0, 5.0, 15.0, 60.0, 300.0]

    def test_delay_clamped_to_last_entry(self):
        assert self.retry.delay_for(6) == 300.0
        assert self.retry.delay_for(50) == 300.0

    def test_exhaustion_at_max_retries(self):
        assert not self.retry.is_exhausted(4)
        assert self.retry.is_exhausted(5)

    def test_empty_table_rejected(self):
        with pytest.raises(ValueError):
            RetryScheduler(self.task_scheduler, delays=[])

    def test_timer_fires_after_delay(self):
        self.retry.arm("op-1", 2, lambda: self.fired.append("op-1"))

        self.task_scheduler.advance(4.9)
        assert self.fired == []

        self.task_scheduler.advance(0.1)
        assert self.fired == ["op-1"]
        assert self.retry.armed() == {}

    def test_rearming_replaces_previous_timer(self):
        self.retry.arm("op-1", 1, lambda: self.fired.append("first"))
        self.retry.arm("op-1", 3, lambda: self.fired.append("second"))

        self.task_scheduler.advance(20)

        assert self.fired == ["second"]

    def test_offline_fire_is_skipped(self):
        self.retry.arm("op-1", 1, lambda: self.fired.append("op-1"))
        self.online = False

        self.task_scheduler.advance(1)

        assert self.fired == []
        assert self.retry.armed() == {}

    def test_cancel_all(self):
        self.retry.arm("op-1", 1, lambda: self.fired.append("op-1"))
        self.retry.arm("op-2", 1, lambda: self.fired.append("op-2"))

        assert self.retry.cancel_all() == 2
        self.task_scheduler.advance(10)

        assert self.fired == []
        assert self.retry.cancel("op-1") is False
