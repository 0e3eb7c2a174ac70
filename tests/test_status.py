"""Tests for status reporting."""

import pytest

from offline_sync.config.schema import SyncConfig
from offline_sync.core import (
    ManualConnectivitySource,
    OperationType,
    SyncEngine,
    TransientError,
)
from offline_sync.scheduler import ManualClock, VirtualTaskScheduler
from offline_sync.storage import InMemoryStore

from fakes import FakeRemote


class TestStatusReporter:
    """Test the aggregate status exposed by the engine."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = ManualClock()
        self.task_scheduler = VirtualTaskScheduler(self.clock)
        self.connectivity = ManualConnectivitySource(online=False)
        self.store = InMemoryStore()
        self.remote = FakeRemote()
        self.engine = SyncEngine(
            self.store,
            self.remote,
            self.connectivity,
            self.task_scheduler,
            clock=self.clock,
            config=SyncConfig(max_retries=1)
        )

    def test_initial_status(self):
        status = self.engine.get_status()

        assert status.is_online is False
        assert status.is_syncing is False
        assert status.pending_operations == 0
        assert status.failed_operations == 0
        assert status.last_sync_at is None
        assert status.last_error is None

    def test_subscribers_refreshed_on_queue_mutation(self):
        reports = []
        self.engine.status_reporter.subscribe(reports.append)

        self.engine.enqueue(OperationType.CREATE, "order", "1", {})

        assert reports[-1].pending_operations == 1

    def test_subscribers_refreshed_on_connectivity_change(self):
        reports = []
        unsubscribe = self.engine.status_reporter.subscribe(reports.append)

        self.connectivity.go_online()
        unsubscribe()
        self.connectivity.go_offline()

        assert [report.is_online for report in reports] == [True]

    @pytest.mark.asyncio
    async def test_cycle_bookkeeping(self):
        self.engine.enqueue(OperationType.CREATE, "order", "1", {})
        self.engine.enqueue(OperationType.CREATE, "order", "2", {})
        self.connectivity.go_online()
        self.remote.fail_next(TransientError("down"))

        await self.engine.sync()

        status = self.engine.get_status()
        assert status.last_sync_at == self.clock.now()
        assert status.failed_operations == 1
        assert status.pending_operations == 0
        assert status.last_error == "1 operations failed"

        self.engine.discard_failed_operations()
        await self.engine.sync()

        assert self.engine.get_status().last_error is None

    @pytest.mark.asyncio
    async def test_last_cycle_error_without_dead_letters(self):
        engine = SyncEngine(
            InMemoryStore(),
            self.remote,
            self.connectivity,
            self.task_scheduler,
            clock=self.clock
        )
        engine.enqueue(OperationType.CREATE, "order", "1", {})
        self.connectivity.go_online()
        self.remote.fail_next(TransientError("gateway timeout"))

        await engine.sync()

        assert engine.get_status().last_error == "gateway timeout"
        assert engine.get_status().pending_operations == 1
