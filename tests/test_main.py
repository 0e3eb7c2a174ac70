"""Tests for the host application's HTTP control surface."""

import pytest
from aiohttp import test_utils

from offline_sync.config import AppSettings
from offline_sync.config.schema import SyncConfig
from offline_sync.core import ManualConnectivitySource, OperationType, SyncEngine, TransientError
from offline_sync.main import SyncApp
from offline_sync.scheduler import ManualClock, VirtualTaskScheduler
from offline_sync.storage import InMemoryStore

from fakes import FakeRemote


class TestSyncAppRoutes:
    """Exercise the control routes against an in-memory engine."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = ManualClock()
        self.connectivity = ManualConnectivitySource(online=False)
        self.remote = FakeRemote()
        self.engine = SyncEngine(
            InMemoryStore(),
            self.remote,
            self.connectivity,
            VirtualTaskScheduler(self.clock),
            clock=self.clock,
            config=SyncConfig(max_retries=1)
        )
        self.app = SyncApp(settings=AppSettings(), engine=self.engine)

    def client(self) -> test_utils.TestClient:
        return test_utils.TestClient(test_utils.TestServer(self.app.create_web_app()))

    @pytest.mark.asyncio
    async def test_health_reflects_running_flag(self):
        async with self.client() as client:
            response = await client.get("/health")
            assert response.status == 503

            self.app.running = True
            response = await client.get("/health")
            assert response.status == 200
            assert (await response.json())["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_enqueue_and_list_pending(self):
        async with self.client() as client:
            response = await client.post("/operations", json={
                "type": "update",
                "entity_type": "order",
                "entity_id": "o1",
                "payload": {"state": "done"}
            })
            assert response.status == 202
            operation_id = (await response.json())["operation_id"]

            response = await client.get("/operations/pending")
            pending = await response.json()

        assert [op["id"] for op in pending] == [operation_id]
        assert pending[0]["status"] == "pending"
        assert pending[0]["payload"] == {"state": "done"}

    @pytest.mark.asyncio
    async def test_enqueue_rejects_invalid_body(self):
        async with self.client() as client:
            missing = await client.post("/operations", json={"type": "create", "entity_type": "order"})
            bad_type = await client.post("/operations", json={
                "type": "upsert", "entity_type": "order", "entity_id": "o1"
            })
            not_json = await client.post("/operations", data="nope")

        assert missing.status == 400
        assert bad_type.status == 400
        assert not_json.status == 400
        assert self.engine.get_pending_operations() == []

    @pytest.mark.asyncio
    async def test_status_and_sync(self):
        self.engine.enqueue(OperationType.CREATE, "order", "o1", {})

        async with self.client() as client:
            status = await (await client.get("/status")).json()
            assert status["sync"]["pending_operations"] == 1
            assert status["sync"]["is_online"] is False
            assert status["remote"]["client_type"] == "FakeRemote"

            self.connectivity.go_online()
            result = await (await client.post("/sync")).json()

        assert result["ran"] is True
        assert result["succeeded"] == 1

    @pytest.mark.asyncio
    async def test_failed_operations_lifecycle(self):
        self.engine.enqueue(OperationType.CREATE, "order", "o1", {})
        self.connectivity.go_online()
        self.remote.fail_next(TransientError("down"), TransientError("down"))
        await self.engine.sync()

        async with self.client() as client:
            failed = await (await client.get("/operations/failed")).json()
            assert len(failed) == 1
            assert failed[0]["last_error"] == "down"

            result = await (await client.post("/operations/failed/retry")).json()
            assert result["attempted"] == 1

            response = await client.delete("/operations/failed")
            assert (await response.json())["discarded"] == 1

        assert len(self.engine.queue) == 0

    @pytest.mark.asyncio
    async def test_remove_operation(self):
        operation_id = self.engine.enqueue(OperationType.DELETE, "label", "l1")

        async with self.client() as client:
            removed = await client.delete(f"/operations/{operation_id}")
            missing = await client.delete(f"/operations/{operation_id}")

        assert removed.status == 200
        assert missing.status == 404
