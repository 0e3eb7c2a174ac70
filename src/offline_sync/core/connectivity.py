"""Connectivity sources and the monitor that turns transitions into sync triggers."""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

import aiohttp

from ..scheduler.base import ScheduledTask, TaskScheduler
from ..scheduler.clock import Clock, SystemClock
from ..utils.logging import get_logger


ConnectivityListener = Callable[[bool], None]


class ConnectivitySource(ABC):
    """Emits online/offline transitions of the transport."""

    def __init__(self):
        self._listeners: List[ConnectivityListener] = []
        self.logger = get_logger(self.__class__.__name__)

    @property
    @abstractmethod
    def is_online(self) -> bool:
        pass

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register a transition listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, online: bool) -> None:
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception as e:
                self.logger.warning("Connectivity listener failed", online=online, error=str(e))

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


class ManualConnectivitySource(ConnectivitySource):
    """Source driven by the host (or a test) calling ``set_online``."""

    def __init__(self, online: bool = True):
        super().__init__()
        self._online = online

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        self._emit(online)

    def go_online(self) -> None:
        self.set_online(True)

    def go_offline(self) -> None:
        self.set_online(False)


class HttpProbeConnectivitySource(ConnectivitySource):
    """Polls a URL; any HTTP response counts as online, network errors as offline."""

    def __init__(
        self,
        url: str,
        interval_seconds: float = 10.0,
        timeout_seconds: float = 5.0,
        initial_online: bool = False
    ):
        super().__init__()
        self.url = url
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self._online = initial_online
        self._session: Optional[aiohttp.ClientSession] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_online(self) -> bool:
        return self._online

    async def start(self) -> None:
        if self._task and not self._task.done():
            return

        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
        )
        await self.probe_once()
        self._task = asyncio.create_task(self._probe_loop())

        self.logger.info(
            "Connectivity probe started",
            url=self.url,
            interval_seconds=self.interval_seconds,
            online=self._online
        )

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._session:
            await self._session.close()
            self._session = None

    async def probe_once(self) -> bool:
        """Probe the URL once and emit a transition if the state changed."""
        online = await self._probe()
        if online != self._online:
            self._online = online
            self.logger.info("Connectivity changed", online=online, url=self.url)
            self._emit(online)
        return online

    async def _probe(self) -> bool:
        if self._session is None:
            return False
        try:
            async with self._session.head(self.url, allow_redirects=True) as response:
                return response.status < 500
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.debug("Connectivity probe failed", url=self.url, error=str(e))
            return False

    async def _probe_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.probe_once()


class ConnectivityMonitor:
    """Observes a ConnectivitySource and requests sync cycles on reconnect.

    Going online arms a debounce timer; flapping restarts it and going offline
    cancels it. Going offline is never treated as a failure.
    """

    def __init__(
        self,
        source: ConnectivitySource,
        task_scheduler: TaskScheduler,
        debounce_seconds: float = 1.0,
        clock: Optional[Clock] = None
    ):
        self.source = source
        self.task_scheduler = task_scheduler
        self.debounce_seconds = debounce_seconds
        self.clock = clock or SystemClock()
        self.logger = get_logger(self.__class__.__name__)

        self.last_transition_at: Optional[datetime] = None
        self._on_online: List[Callable[[], None]] = []
        self._listeners: List[ConnectivityListener] = []
        self._debounce: Optional[ScheduledTask] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def is_online(self) -> bool:
        return self.source.is_online

    @property
    def is_started(self) -> bool:
        return self._unsubscribe is not None

    def on_online(self, callback: Callable[[], None]) -> None:
        """Register a callback fired once the debounce window after reconnecting elapses."""
        self._on_online.append(callback)

    def add_listener(self, listener: ConnectivityListener) -> None:
        """Register a callback fired immediately on every transition."""
        self._listeners.append(listener)

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.source.subscribe(self._handle_transition)

    def stop(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self._cancel_debounce()

    def _handle_transition(self, online: bool) -> None:
        self.last_transition_at = self.clock.now()

        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception as e:
                self.logger.warning("Connectivity listener failed", error=str(e))

        self._cancel_debounce()

        if not online:
            self.logger.info("Connection lost, mutations will stay queued")
            return

        self.logger.info("Connection restored, scheduling sync", debounce_seconds=self.debounce_seconds)

        if self.debounce_seconds <= 0:
            self._fire_online()
        else:
            self._debounce = self.task_scheduler.call_later(
                self.debounce_seconds, self._fire_online, name="connectivity:debounce"
            )

    def _fire_online(self) -> None:
        self._debounce = None
        if not self.source.is_online:
            return
        for callback in list(self._on_online):
            callback()

    def _cancel_debounce(self) -> None:
        if self._debounce:
            self._debounce.cancel()
            self._debounce = None
