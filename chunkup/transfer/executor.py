"""
Transfer Executors

Design Decision: Outcomes Instead of Callbacks
==============================================

Every send returns one of three tagged outcomes:

- Success(value)     - storage accepted the bytes
- Retryable(error)   - transient; the same bytes may be sent again
- Fatal(error)       - stop the whole upload

The scheduler branches on the outcome, so the control flow of an upload
reads top to bottom instead of being spread over progress/error/abort hooks.

Both executors send with PUT. Storage replaces whatever was stored at the
URL, so sending the same part twice is harmless.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import httpx

from ..file.payload import Payload
from .errors import ChunkUploadFailed, CreateComponentFailed, NetworkOffline
from .progress import ProgressAggregator
from .protocol import FINGERPRINT_HEADER, PartDescriptor, PartResult, unquote_fingerprint

logger = logging.getLogger(__name__)

# Connectivity probe type: returns False when the machine is known offline
ConnectivityCheck = Callable[[], bool]


def always_online() -> bool:
    return True


@dataclass
class Success:
    value: Any = None


@dataclass
class Retryable:
    error: Exception


@dataclass
class Fatal:
    error: Exception


Outcome = Union[Success, Retryable, Fatal]


class ConnectionRegistry:
    """
    Connections currently open, keyed by part number.

    A tracked task is released when it finishes, whatever the reason,
    so the count can be trusted for back-pressure.
    """

    def __init__(self):
        self._active: Dict[int, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._active)

    def __contains__(self, key: int) -> bool:
        return key in self._active

    def track(self, key: int, task: asyncio.Task):
        if key in self._active:
            raise RuntimeError(f"Part #{key} already has an open connection")
        self._active[key] = task
        task.add_done_callback(lambda _: self._release(key, task))

    def _release(self, key: int, task: asyncio.Task):
        if self._active.get(key) is task:
            del self._active[key]

    def cancel_all(self) -> List[asyncio.Task]:
        """Cancel every open connection and return the cancelled tasks."""
        tasks = list(self._active.values())
        for task in tasks:
            task.cancel()
        return tasks


def _without_content_length(headers: Mapping[str, str]) -> Dict[str, str]:
    return {
        key: value for key, value in headers.items()
        if key.lower() != 'content-length'
    }


class PartExecutor:
    """Sends one byte range of the payload to its pre-signed URL."""

    def __init__(self, http: httpx.AsyncClient, payload: Payload,
                 aggregator: ProgressAggregator,
                 timeout: Optional[float] = None,
                 is_online: ConnectivityCheck = always_online):
        self.http = http
        self.payload = payload
        self.aggregator = aggregator
        self.timeout = timeout
        self.is_online = is_online

    async def send(self, part: PartDescriptor, offset: int, length: int) -> Outcome:
        """
        PUT bytes ``offset .. offset + length`` to ``part.signed_url``.

        Returns:
            Success(PartResult) or Retryable(error)
        """
        part_number = part.part_number

        if not self.is_online():
            return Retryable(NetworkOffline())

        sent = 0

        async def body():
            nonlocal sent
            async for block in self.payload.stream(offset, length):
                sent += len(block)
                self.aggregator.update(part_number, sent)
                yield block

        try:
            response = await self.http.put(
                part.signed_url,
                content=body(),
                headers={'Content-Length': str(length)},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            return Retryable(ChunkUploadFailed(
                f"Upload of part #{part_number} timed out: {e}", part_number
            ))
        except httpx.TransportError as e:
            return Retryable(ChunkUploadFailed(
                f"Upload of part #{part_number} failed: {e}", part_number
            ))

        if response.status_code != 200:
            return Retryable(ChunkUploadFailed(
                f"Failed chunk upload: HTTP {response.status_code}",
                part_number, status_code=response.status_code,
            ))

        fingerprint = response.headers.get(FINGERPRINT_HEADER)
        if not fingerprint:
            return Retryable(ChunkUploadFailed(
                f"Part #{part_number} response has no {FINGERPRINT_HEADER} header",
                part_number, status_code=response.status_code,
            ))

        logger.debug(f"Upload of part {part_number} complete ({length:,} bytes)")
        return Success(PartResult(part_number, unquote_fingerprint(fingerprint)))


class SingleTransferExecutor:
    """Sends the whole payload in one PUT."""

    def __init__(self, http: httpx.AsyncClient, payload: Payload,
                 aggregator: ProgressAggregator,
                 timeout: Optional[float] = None):
        self.http = http
        self.payload = payload
        self.aggregator = aggregator
        self.timeout = timeout

    async def send(self, url: str, headers: Mapping[str, str], size: int) -> Outcome:
        """
        PUT the payload to *url* with the headers preflight handed out.

        A ``Content-Length`` from preflight is dropped; the length of the
        bytes actually sent is used instead.
        """
        logger.debug(f"Uploading file to: {url}")

        request_headers = _without_content_length(headers)
        request_headers['Content-Length'] = str(size)
        sent = 0

        async def body():
            nonlocal sent
            async for block in self.payload.stream(0, size):
                sent += len(block)
                self.aggregator.update(1, sent)
                yield block

        try:
            response = await self.http.put(
                url, content=body(), headers=request_headers, timeout=self.timeout,
            )
        except httpx.TransportError as e:
            return Fatal(CreateComponentFailed(f"Failed to upload file: {e}"))

        if response.status_code >= 400:
            return Fatal(CreateComponentFailed(
                f"Failed to upload file: {response.status_code}",
                status_code=response.status_code,
            ))

        return Success()
