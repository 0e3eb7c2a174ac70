"""Main application entry point."""

import asyncio
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from aiohttp import web, web_runner
from pydantic import ValidationError

from .config.loader import ConfigLoader
from .config.settings import AppSettings, get_settings
from .core.connectivity import (
    ConnectivitySource,
    HttpProbeConnectivitySource,
    ManualConnectivitySource,
)
from .core.models import OperationType
from .core.sync_engine import SyncCycleResult, SyncEngine
from .remote.http import HttpRemoteAPI
from .scheduler.job_scheduler import JobScheduler
from .storage.database import DatabaseManager, init_database
from .storage.store import SQLAlchemyStore
from .utils.logging import get_logger, setup_logging


def cycle_to_dict(result: SyncCycleResult) -> Dict[str, Any]:
    return {
        "ran": result.ran,
        "reason": result.reason,
        "started_at": result.started_at.isoformat() if result.started_at else None,
        "finished_at": result.finished_at.isoformat() if result.finished_at else None,
        "attempted": result.attempted,
        "succeeded": result.succeeded,
        "failed": result.failed,
        "dead_lettered": result.dead_lettered,
        "deferred": result.deferred,
        "skipped": result.skipped,
        "conflicts": result.conflicts,
        "errors": result.errors,
    }


class SyncApp:
    """Offline sync host application with its HTTP control surface."""

    def __init__(self, settings: Optional[AppSettings] = None, engine: Optional[SyncEngine] = None):
        """Initialize the application.

        Args:
            settings: Application settings, the global settings by default
            engine: Pre-built engine; built from settings on startup when omitted
        """
        self.settings = settings or get_settings()
        self.logger = get_logger("OfflineSync")
        self.running = False
        self.started_at: Optional[datetime] = None
        self.web_app: Optional[web.Application] = None
        self.web_runner: Optional[web_runner.AppRunner] = None
        self.engine = engine
        self.db_manager: Optional[DatabaseManager] = None
        self.job_scheduler: Optional[JobScheduler] = None
        self.remote: Optional[HttpRemoteAPI] = None

    def _build_connectivity(self) -> ConnectivitySource:
        connectivity = self.settings.connectivity
        if connectivity.probe_url:
            return HttpProbeConnectivitySource(
                connectivity.probe_url,
                interval_seconds=connectivity.probe_interval_seconds,
                timeout_seconds=connectivity.probe_timeout_seconds
            )
        # Without a probe the host reports connectivity itself
        return ManualConnectivitySource(online=True)

    def build_engine(self) -> SyncEngine:
        """Wire the engine from settings: SQLite store, REST remote and APScheduler timers."""
        config = ConfigLoader().load_from_settings(self.settings)

        self.db_manager = init_database(self.settings.store.url, create_tables=True)
        store = SQLAlchemyStore(self.db_manager, namespace=self.settings.store.namespace)

        self.remote = HttpRemoteAPI(
            self.settings.remote.base_url,
            route_for=config.route_for,
            api_token=self.settings.remote.api_token,
            timeout_seconds=self.settings.remote.timeout_seconds
        )

        self.job_scheduler = JobScheduler()

        return SyncEngine(
            store,
            self.remote,
            self._build_connectivity(),
            self.job_scheduler,
            config=config
        )

    async def startup(self):
        """Application startup."""
        self.logger.info(
            "Starting offline sync engine",
            version=self.settings.version,
            environment=self.settings.environment
        )

        Path("./data").mkdir(exist_ok=True)
        Path("./logs").mkdir(exist_ok=True)

        if self.engine is None:
            self.engine = self.build_engine()

        if self.job_scheduler:
            self.job_scheduler.start()

        await self.engine.start()
        await self._setup_web_server()

        self.running = True
        self.started_at = datetime.now(timezone.utc)
        self.logger.info("Offline sync engine started successfully")

    async def shutdown(self):
        """Application shutdown."""
        self.logger.info("Shutting down offline sync engine")
        self.running = False

        await self._stop_web_server()

        if self.engine:
            await self.engine.stop()

        if self.job_scheduler:
            self.job_scheduler.shutdown()

        if self.remote:
            await self.remote.close()

        if self.db_manager:
            self.db_manager.dispose()

        self.logger.info("Offline sync engine stopped")

    async def run(self):
        """Run until a shutdown signal clears ``running``."""
        await self.startup()

        try:
            while self.running:
                await asyncio.sleep(1)
        finally:
            await self.shutdown()

    # Web server

    def create_web_app(self) -> web.Application:
        app = web.Application()

        app.router.add_get('/health', self._health_handler)
        app.router.add_get('/status', self._status_handler)
        app.router.add_get('/operations/pending', self._pending_handler)
        app.router.add_get('/operations/failed', self._failed_handler)
        app.router.add_post('/operations', self._enqueue_handler)
        app.router.add_post('/sync', self._sync_handler)
        app.router.add_post('/operations/failed/retry', self._retry_failed_handler)
        app.router.add_delete('/operations/failed', self._discard_failed_handler)
        app.router.add_delete('/operations/{operation_id}', self._remove_handler)

        return app

    async def _setup_web_server(self):
        self.web_app = self.create_web_app()

        self.web_runner = web_runner.AppRunner(self.web_app)
        await self.web_runner.setup()

        host, port = self.settings.server.host, self.settings.server.port
        site = web_runner.TCPSite(self.web_runner, host, port)
        await site.start()

        self.logger.info(f"Web server started on http://{host}:{port}")

    async def _stop_web_server(self):
        if self.web_runner:
            await self.web_runner.cleanup()
            self.web_runner = None
            self.logger.info("Web server stopped")

    # Handlers

    async def _health_handler(self, request):
        """Health check endpoint."""
        uptime = 0.0
        if self.started_at:
            uptime = (datetime.now(timezone.utc) - self.started_at).total_seconds()

        health_data = {
            "status": "healthy" if self.running else "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": self.settings.version,
            "environment": self.settings.environment,
            "uptime_seconds": uptime
        }

        status_code = 200 if self.running else 503
        return web.json_response(health_data, status=status_code)

    async def _status_handler(self, request):
        """Sync status endpoint."""
        status_data = {
            "application": {
                "name": self.settings.name,
                "version": self.settings.version,
                "environment": self.settings.environment,
                "running": self.running,
                "timestamp": datetime.now(timezone.utc).isoformat()
            },
            "sync": self.engine.get_status().model_dump(mode="json"),
            "remote": await self.engine.remote.get_info(),
            "scheduler": "running" if self.job_scheduler and self.job_scheduler.running else "stopped"
        }
        return web.json_response(status_data)

    async def _pending_handler(self, request):
        operations = self.engine.get_pending_operations()
        return web.json_response([op.model_dump(mode="json") for op in operations])

    async def _failed_handler(self, request):
        operations = self.engine.get_failed_operations()
        return web.json_response([op.model_dump(mode="json") for op in operations])

    async def _enqueue_handler(self, request):
        try:
            body = await request.json()
        except ValueError:
            return web.json_response({"error": "Request body must be JSON"}, status=400)

        if not isinstance(body, dict):
            return web.json_response({"error": "Request body must be an object"}, status=400)

        missing = [name for name in ("type", "entity_type", "entity_id") if body.get(name) in (None, "")]
        if missing:
            return web.json_response({"error": f"Missing fields: {', '.join(missing)}"}, status=400)

        try:
            operation_id = self.engine.enqueue(
                OperationType(body.get("type")),
                body.get("entity_type"),
                body.get("entity_id"),
                body.get("payload")
            )
        except (ValueError, ValidationError) as e:
            return web.json_response({"error": str(e)}, status=400)

        return web.json_response({"operation_id": operation_id}, status=202)

    async def _sync_handler(self, request):
        result = await self.engine.sync()
        return web.json_response(cycle_to_dict(result))

    async def _retry_failed_handler(self, request):
        result = await self.engine.retry_failed_operations()
        return web.json_response(cycle_to_dict(result))

    async def _discard_failed_handler(self, request):
        discarded = self.engine.discard_failed_operations()
        return web.json_response({"discarded": discarded})

    async def _remove_handler(self, request):
        operation_id = request.match_info["operation_id"]
        if not self.engine.remove_operation(operation_id):
            return web.json_response({"error": f"Operation {operation_id} not found"}, status=404)
        return web.json_response({"removed": operation_id})


def setup_signal_handlers(app: SyncApp):
    """Set up signal handlers for graceful shutdown."""
    def signal_handler(signum, frame):
        app.logger.info(f"Received signal {signum}")
        app.running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def main():
    """Main entry point."""
    setup_logging()

    logger = get_logger("main")
    logger.info("Initializing offline sync application")

    app = SyncApp()
    setup_signal_handlers(app)

    await app.run()


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        sys.exit(0)
    except Exception as e:
        print(f"Application failed with error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
