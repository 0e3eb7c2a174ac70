"""Tests for connectivity sources and the debounced monitor."""

import pytest
from aiohttp import web
from aiohttp import test_utils

from offline_sync.core import (
    ConnectivityMonitor,
    HttpProbeConnectivitySource,
    ManualConnectivitySource,
)
from offline_sync.scheduler import ManualClock, VirtualTaskScheduler


class TestConnectivityMonitor:
    """Test debounce handling of online transitions."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = ManualClock()
        self.task_scheduler = VirtualTaskScheduler(self.clock)
        self.source = ManualConnectivitySource(online=False)
        self.monitor = ConnectivityMonitor(self.source, self.task_scheduler, debounce_seconds=1.0, clock=self.clock)
        self.triggers = []
        self.monitor.on_online(lambda: self.triggers.append(self.clock.now()))
        self.monitor.start()

    def test_online_fires_after_debounce(self):
        self.source.go_online()
        assert self.triggers == []

        self.task_scheduler.advance(1)

        assert len(self.triggers) == 1
        assert self.monitor.is_online

    def test_flapping_restarts_debounce(self):
        self.source.go_online()
        self.task_scheduler.advance(0.5)
        self.source.go_offline()
        self.source.go_online()
        self.task_scheduler.advance(0.5)

        assert self.triggers == []

        self.task_scheduler.advance(0.5)
        assert len(self.triggers) == 1

    def test_offline_cancels_pending_trigger(self):
        self.source.go_online()
        self.source.go_offline()

        self.task_scheduler.advance(5)

        assert self.triggers == []

    def test_zero_debounce_fires_immediately(self):
        monitor = ConnectivityMonitor(self.source, self.task_scheduler, debounce_seconds=0, clock=self.clock)
        fired = []
        monitor.on_online(lambda: fired.append(True))
        monitor.start()

        self.source.go_online()

        assert fired == [True]

    def test_listeners_see_every_transition(self):
        seen = []
        self.monitor.add_listener(seen.append)

        self.source.go_online()
        self.source.go_offline()

        assert seen == [True, False]
        assert self.monitor.last_transition_at == self.clock.now()

    def test_stop_unsubscribes(self):
        self.monitor.stop()

        self.source.go_online()
        self.task_scheduler.advance(5)

        assert self.triggers == []
        assert not self.monitor.is_started

    def test_repeated_state_not_emitted(self):
        seen = []
        self.source.subscribe(seen.append)

        self.source.set_online(False)
        self.source.set_online(True)
        self.source.set_online(True)

        assert seen == [True]


class TestHttpProbeConnectivitySource:
    """Test the aiohttp health probe."""

    @pytest.mark.asyncio
    async def test_probe_reports_reachable_server_online(self):
        async def healthy(request):
            return web.Response(status=200)

        app = web.Application()
        app.router.add_get("/health", healthy)

        async with test_utils.TestServer(app) as server:
            source = HttpProbeConnectivitySource(str(server.make_url("/health")), interval_seconds=60)
            seen = []
            source.subscribe(seen.append)

            await source.start()
            try:
                assert source.is_online
                assert seen == [True]
            finally:
                await source.stop()

    @pytest.mark.asyncio
    async def test_server_error_counts_as_offline(self):
        async def failing(request):
            return web.Response(status=503)

        app = web.Application()
        app.router.add_get("/health", failing)

        async with test_utils.TestServer(app) as server:
            source = HttpProbeConnectivitySource(
                str(server.make_url("/health")), interval_seconds=60, initial_online=True
            )
            await source.start()
            try:
                assert not source.is_online
            finally:
                await source.stop()

    @pytest.mark.asyncio
    async def test_unreachable_host_is_offline(self):
        source = HttpProbeConnectivitySource("http://127.0.0.1:9/health", interval_seconds=60, timeout_seconds=1)

        await source.start()
        try:
            assert not source.is_online
        finally:
            await source.stop()
