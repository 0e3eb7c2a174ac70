"""In-memory remote API used by the engine tests."""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

from offline_sync.remote.base import RemoteAPI, RemoteRecord


class FakeRemote(RemoteAPI):
    """Records every call; scripted failures are raised in order."""

    def __init__(self):
        super().__init__()
        self.calls: List[Tuple[str, str, str, Any]] = []
        self.fetches: List[Tuple[str, str]] = []
        self.failures: List[Exception] = []
        self.records: Dict[Tuple[str, str], RemoteRecord] = {}
        self.on_call: Optional[Callable[[str, str, str], None]] = None
        self.gate: Optional[asyncio.Event] = None

    def fail_next(self, *errors: Exception) -> None:
        self.failures.extend(errors)

    async def _call(self, method: str, entity_type: str, entity_id: str, payload: Any = None) -> Any:
        self.calls.append((method, entity_type, entity_id, payload))
        if self.gate is not None:
            await self.gate.wait()
        if self.on_call:
            self.on_call(method, entity_type, entity_id)
        if self.failures:
            raise self.failures.pop(0)
        return {"id": entity_id}

    async def create(self, entity_type: str, entity_id: str, payload: Any) -> Any:
        return await self._call("create", entity_type, entity_id, payload)

    async def update(self, entity_type: str, entity_id: str, payload: Any) -> Any:
        return await self._call("update", entity_type, entity_id, payload)

    async def delete(self, entity_type: str, entity_id: str) -> Any:
        return await self._call("delete", entity_type, entity_id)

    async def fetch(self, entity_type: str, entity_id: str) -> Optional[RemoteRecord]:
        self.fetches.append((entity_type, entity_id))
        return self.records.get((entity_type, entity_id))
