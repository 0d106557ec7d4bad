"""
RPC Session

The uploader only needs three things from the server side:

- call(operations)         - batched RPC, results in request order
- delete(entity_type, keys)
- publish(event)           - optional; only when an event hub is connected

Session is that contract. RpcSession implements it over HTTP for the CLI;
applications with their own API client can subclass Session instead.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .transfer.errors import ServerError
from .transfer.protocol import Event, delete_operation

logger = logging.getLogger(__name__)


class Session:
    """What the uploader expects from an API session."""

    async def call(self, operations: List[Dict[str, Any]]) -> List[Any]:
        raise NotImplementedError

    async def delete(self, entity_type: str, keys: List[str]) -> Any:
        responses = await self.call([delete_operation(entity_type, keys)])
        return responses[0]

    @property
    def supports_events(self) -> bool:
        return False

    async def publish(self, event: Event):
        raise NotImplementedError


class RpcSession(Session):
    """
    Session talking to ``{server_url}/api`` with httpx.

    Usage:
        session = RpcSession("https://example.test", "user", "key")
        try:
            responses = await session.call([...])
        finally:
            await session.aclose()
    """

    def __init__(self, server_url: str, api_user: str, api_key: str,
                 http: Optional[httpx.AsyncClient] = None,
                 timeout: Optional[float] = 60.0):
        self.server_url = server_url.rstrip('/')
        self.api_user = api_user
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._owns_http = http is None
        self._headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'X-Api-User': api_user,
            'X-Api-Key': api_key,
        }

    @property
    def http(self) -> httpx.AsyncClient:
        """Client used for the RPC endpoint; reused for storage PUTs."""
        return self._http

    async def aclose(self) -> None:
        """Close the HTTP client if owned."""
        if self._owns_http:
            await self._http.aclose()

    async def call(self, operations: List[Dict[str, Any]]) -> List[Any]:
        """
        Send *operations* in one request.

        Raises:
            ServerError: HTTP error or an exception payload from the server
        """
        url = f"{self.server_url}/api"
        logger.debug(f"Calling {url} with {len(operations)} operations")

        try:
            resp = await self._http.post(url, json=operations, headers=self._headers)
        except httpx.RequestError as e:
            raise ServerError(f"Request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            raise ServerError(
                f"Invalid response from server: HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        if isinstance(data, dict) and 'exception' in data:
            raise ServerError(
                data.get('content', 'Server error'),
                exception=data['exception'],
                error_code=data.get('error_code'),
                status_code=resp.status_code,
            )

        if resp.status_code >= 400:
            raise ServerError(f"Server error: HTTP {resp.status_code}",
                              status_code=resp.status_code)

        if not isinstance(data, list):
            raise ServerError(f"Expected a list of results, got {type(data).__name__}")

        return data
