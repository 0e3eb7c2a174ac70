"""REST implementation of the remote mutation API."""

import asyncio
from typing import Any, Callable, Dict, Optional

import aiohttp

from .base import RemoteAPI, RemoteRecord, extract_updated_at
from ..config.schema import SyncConfig
from ..core.errors import ConflictError, PermanentError, TransientError


# Statuses worth retrying besides 5xx
RETRYABLE_STATUSES = {408, 425, 429}


class HttpRemoteAPI(RemoteAPI):
    """Maps entity mutations onto REST routes of the kanban backend.

    Create is ``POST {route}``, update ``PUT {route}/{id}``, delete
    ``DELETE {route}/{id}`` and fetch ``GET {route}/{id}``.
    """

    def __init__(
        self,
        base_url: str,
        route_for: Optional[Callable[[str], str]] = None,
        api_token: Optional[str] = None,
        timeout_seconds: float = 30.0,
        **kwargs
    ):
        """Initialize the HTTP client.

        Args:
            base_url: Base API URL
            route_for: Maps an entity type to its REST route
            api_token: Bearer token sent with every request
            timeout_seconds: Total timeout for a single request
        """
        super().__init__(**kwargs)

        self.base_url = base_url.rstrip('/')
        self.route_for = route_for or SyncConfig().route_for
        self.api_token = api_token
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

        self.logger.info(
            "HTTP remote API initialized",
            base_url=self.base_url,
            timeout_seconds=timeout_seconds
        )

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self.session

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json"
        }
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _url(self, entity_type: str, entity_id: Optional[str] = None) -> str:
        url = f"{self.base_url}{self.route_for(entity_type)}"
        if entity_id is not None:
            url = f"{url}/{entity_id}"
        return url

    async def _request(
        self,
        method: str,
        url: str,
        payload: Any = None,
        allow_not_found: bool = False
    ) -> Any:
        """Make an API request and translate failures into sync errors."""
        session = await self._ensure_session()

        try:
            async with session.request(method, url, json=payload, headers=self._headers()) as response:
                body = await self._read_body(response)

                if response.status == 404 and allow_not_found:
                    return None

                if response.status == 409:
                    raise ConflictError(
                        f"{method} {url} conflicted with remote state",
                        remote_payload=body,
                        remote_updated_at=extract_updated_at(body)
                    )

                if response.status >= 500 or response.status in RETRYABLE_STATUSES:
                    raise TransientError(
                        f"{method} {url} failed: {response.status} - {self._error_message(body)}",
                        status_code=response.status
                    )

                if response.status >= 400:
                    raise PermanentError(
                        f"{method} {url} rejected: {response.status} - {self._error_message(body)}",
                        status_code=response.status
                    )

                return body

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientError(f"Network error on {method} {url}: {e or type(e).__name__}")

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Any:
        if response.content_type == "application/json":
            return await response.json()
        text = await response.text()
        return text or None

    @staticmethod
    def _error_message(body: Any) -> str:
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or body)
        return str(body) if body else "no response body"

    async def create(self, entity_type: str, entity_id: str, payload: Any) -> Any:
        return await self._request("POST", self._url(entity_type), payload)

    async def update(self, entity_type: str, entity_id: str, payload: Any) -> Any:
        return await self._request("PUT", self._url(entity_type, entity_id), payload)

    async def delete(self, entity_type: str, entity_id: str) -> Any:
        return await self._request("DELETE", self._url(entity_type, entity_id))

    async def fetch(self, entity_type: str, entity_id: str) -> Optional[RemoteRecord]:
        body = await self._request("GET", self._url(entity_type, entity_id), allow_not_found=True)
        if body is None:
            return None

        # Some routes wrap the entity in {"data": {...}}
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]

        return RemoteRecord(payload=body, updated_at=extract_updated_at(body))

    async def get_info(self) -> Dict[str, Any]:
        return {
            "client_type": self.__class__.__name__,
            "base_url": self.base_url,
            "timeout_seconds": self.timeout_seconds
        }
