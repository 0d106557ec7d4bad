"""Shared fakes for upload tests."""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Set

import httpx
import pytest

from chunkup.session import Session
from chunkup.transfer.retry import Clock


STORAGE_URL = 'https://storage.test'


class FakeSession(Session):
    """In-memory RPC endpoint that records every batch it receives."""

    def __init__(self, upload_id: str = 'upload-id'):
        self.upload_id = upload_id
        self.calls: List[List[Dict[str, Any]]] = []
        self.deletes: List[tuple] = []
        self.published: List[Any] = []
        self.fail_actions: Set[str] = set()
        self.fail_delete = False
        self.metadata_override: Optional[Dict[str, Any]] = None

    async def call(self, operations):
        self.calls.append(operations)
        await asyncio.sleep(0)
        responses = []
        for operation in operations:
            action = operation['action']
            if action in self.fail_actions:
                raise RuntimeError(f"{action} failed")
            if action == 'create':
                responses.append({'action': 'create', 'data': operation['entity_data']})
            elif action == 'get_upload_metadata':
                responses.append(self._metadata(operation))
            else:
                responses.append({'action': action})
        return responses

    async def delete(self, entity_type, keys):
        self.deletes.append((entity_type, keys))
        await asyncio.sleep(0)
        if self.fail_delete:
            raise RuntimeError('delete refused')
        return {'action': 'delete'}

    @property
    def supports_events(self) -> bool:
        return True

    async def publish(self, event):
        self.published.append(event)

    def _metadata(self, operation):
        if self.metadata_override is not None:
            return self.metadata_override
        parts = operation['parts']
        if parts is None:
            return {
                'url': f'{STORAGE_URL}/file',
                'headers': {'Content-Type': 'application/octet-stream',
                            'Content-Length': '1'},
            }
        return {
            'component_id': operation['component_id'],
            'upload_id': self.upload_id,
            'urls': [
                {'signed_url': f'{STORAGE_URL}/part-{n}', 'part_number': n}
                for n in range(1, parts + 1)
            ],
        }

    def actions(self) -> List[List[str]]:
        return [[operation['action'] for operation in batch] for batch in self.calls]

    def completion_call(self) -> Optional[Dict[str, Any]]:
        for batch in self.calls:
            for operation in batch:
                if operation['action'] == 'complete_multipart_upload':
                    return operation
        return None


class FakeStorage:
    """Pre-signed URL endpoint answering PUTs with ETags."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.failures: Dict[str, int] = {}   # path -> failures left
        self.fail_status = 500
        self.missing_etag: Set[str] = set()
        self.hang: Set[str] = set()          # paths that never answer
        self.delay = 0.0
        self.active = 0
        self.max_active = 0
        self.on_request: Optional[Callable[[httpx.Request], None]] = None

    def fail(self, path: str, times: int):
        self.failures[path] = times

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append(request)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.on_request:
                self.on_request(request)
            if path in self.hang:
                await asyncio.Event().wait()
            await asyncio.sleep(self.delay)

            if self.failures.get(path, 0) > 0:
                self.failures[path] -= 1
                return httpx.Response(self.fail_status)
            if path in self.missing_etag:
                return httpx.Response(200)
            return httpx.Response(200, headers={'ETag': f'"etag{path.replace("/", "-")}"'})
        finally:
            self.active -= 1

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]


class RecordingClock(Clock):
    """Back-off clock that returns immediately and remembers the delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def sleep(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def clock():
    return RecordingClock()
