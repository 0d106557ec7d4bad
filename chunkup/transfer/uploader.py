"""
Uploader

Design Decision: Upload Flow
============================

Upload Flow:
1. Pick a strategy from the declared size (single PUT or multipart)
2. Preflight: register the component and get pre-signed URL(s) in one call
3. Send bytes
   - single: one PUT of the whole payload
   - multipart: parts in parallel, bounded, each retried with back-off
4. Commit: complete the multipart upload and add a location record
5. On any failure after preflight, delete the component again

Caller Contract:
- on_progress(percent) - monotonic, 100 only once every part is stored
- on_aborted()         - caller cancelled; fires before on_error
- on_error(error)      - exactly one failure report per upload
- on_complete(id)      - exactly once on success; never together with on_error
"""

import asyncio
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..file.chunker import FileChunker
from ..file.naming import normalize_name, split_file_extension
from ..file.payload import Payload
from .completion import CompletionCoordinator
from .errors import CleanupFailed, CommitFailed, PreflightFailed, UploadAborted, UploadError, ValidationError
from .executor import (
    ConnectionRegistry, ConnectivityCheck, Fatal, Outcome, PartExecutor,
    SingleTransferExecutor, Success, always_online,
)
from .preflight import PreflightCoordinator, TransferRequest
from .progress import ProgressAggregator, ProgressCallback
from .protocol import (
    COMPONENT_ENTITY_TYPE, SERVER_LOCATION_ID, MultipartUploadMetadata,
    PartResult, SingleUploadMetadata, UploadMetadata,
)
from .retry import BackoffPolicy, Clock
from .scheduler import DEFAULT_MAX_CONNECTIONS, TransferSession
from .signal import AbortSignal
from .strategy import TransferPlan, select_plan

logger = logging.getLogger(__name__)


class Uploader:
    """
    Uploads one payload as a component.

    Usage:
        uploader = Uploader(session, FilePayload(path), on_progress=print)
        component_id = await uploader.start()

    Raises:
        ValidationError: no usable component name (raised here, before
            any network call)
    """

    def __init__(self, session, payload: Payload,
                 name: Optional[str] = None,
                 data: Optional[Dict[str, Any]] = None,
                 on_progress: Optional[ProgressCallback] = None,
                 on_aborted: Optional[Callable[[], Any]] = None,
                 on_error: Optional[Callable[[UploadError], Any]] = None,
                 on_complete: Optional[Callable[[str], Any]] = None,
                 on_cleanup_error: Optional[Callable[[CleanupFailed], Any]] = None,
                 signal: Optional[AbortSignal] = None,
                 legacy_client: Optional[httpx.AsyncClient] = None,
                 http: Optional[httpx.AsyncClient] = None,
                 max_connections: int = DEFAULT_MAX_CONNECTIONS,
                 backoff: Optional[BackoffPolicy] = None,
                 clock: Optional[Clock] = None,
                 timeout: Optional[float] = None,
                 is_online: ConnectivityCheck = always_online,
                 chunk_size: Optional[int] = None,
                 location_id: str = SERVER_LOCATION_ID,
                 entity_type: str = COMPONENT_ENTITY_TYPE):
        self.session = session
        self.payload = payload

        component_name = name if name is not None else payload.name
        normalized_name = normalize_name(component_name)
        if not normalized_name:
            raise ValidationError("Component name is missing.")

        stem, extension = split_file_extension(normalized_name)
        self.data = dict(data or {})

        self.request = TransferRequest(
            component_id=self.data.get('id') or str(uuid.uuid4()),
            name=self.data.get('name') or stem,
            file_type=self.data.get('file_type') or extension,
            size=self.data.get('size') or payload.size,
            data=self.data,
        )

        self.on_progress = on_progress
        self.on_aborted = on_aborted
        self.on_error = on_error
        self.on_complete = on_complete

        self.legacy_client = legacy_client
        self.http = http if http is not None else getattr(session, 'http', None)
        self.max_connections = max_connections
        self.backoff = backoff or BackoffPolicy()
        self.clock = clock
        self.timeout = timeout
        self.is_online = is_online

        self.plan: TransferPlan = select_plan(
            self.request.size, chunk_size, force_single=legacy_client is not None
        )

        self.registry = ConnectionRegistry()
        self.preflight = PreflightCoordinator(session, entity_type=entity_type)
        self.completion = CompletionCoordinator(
            session, self.component_id, location_id=location_id,
            entity_type=entity_type, on_cleanup_error=on_cleanup_error,
        )
        self.metadata: Optional[UploadMetadata] = None
        self.transfer: Optional[TransferSession] = None
        self.results: List[PartResult] = []

        self._started = False
        self._aborted = False
        self._committing = False
        self._finished = False
        self._preflight_task: Optional[asyncio.Task] = None

        self._signal = signal
        if signal is not None:
            signal.add_listener(self._handle_abort_signal)
            if signal.aborted:
                self.abort()

    @property
    def component_id(self) -> str:
        return self.request.component_id

    @property
    def is_finished(self) -> bool:
        return self._finished

    async def start(self) -> Optional[str]:
        """
        Run the upload to completion or failure.

        Returns:
            The component id, or None if the upload failed and on_error
            was called. Without an on_error callback the error is raised.
        """
        if self._started:
            raise RuntimeError("An Uploader can only be started once")
        self._started = True

        owns_http = self.http is None
        http = self.http or httpx.AsyncClient()

        try:
            await self._run(http)
        except Exception as e:
            error = self._as_upload_error(e)
            self._finished = True
            if self.on_error is None:
                raise error
            self.on_error(error)
            return None
        finally:
            self._detach_signal()
            if owns_http:
                await http.aclose()

        self._finished = True
        logger.debug(f"Upload complete {self.component_id}")
        if self.on_complete:
            self.on_complete(self.component_id)
        return self.component_id

    def abort(self):
        """
        Cancel the upload.

        Open connections are cancelled right away; cleanup and the
        on_error report happen in start(). Does nothing once the upload
        has finished or is being committed.
        """
        if self._finished or self._committing or self._aborted:
            return

        self._aborted = True
        logger.info(f"Aborting upload of {self.component_id}")
        if self.on_aborted:
            self.on_aborted()

        if self.transfer is not None:
            self.transfer.abort(UploadAborted())
        self.registry.cancel_all()
        if self._preflight_task is not None:
            self._preflight_task.cancel()

    # === Steps ===

    async def _run(self, http: httpx.AsyncClient):
        logger.debug(f"Upload starting {self.component_id} "
                     f"({self.request.size:,} bytes, {self.plan.strategy.value})")

        if self._aborted:
            raise UploadAborted()

        self.metadata = await self._run_preflight()

        # Preflight finished before abort() could cancel it
        if self._aborted:
            await self.completion.cleanup()
            raise UploadAborted()

        if isinstance(self.metadata, MultipartUploadMetadata):
            outcome = await self._run_multipart(http, self.metadata)
        else:
            outcome = await self._run_single(http, self.metadata)

        # An abort that raced a finished transfer still wins
        if self._aborted and not isinstance(outcome, Fatal):
            outcome = Fatal(UploadAborted())

        if isinstance(outcome, Fatal):
            await self.completion.cleanup()
            raise self._as_upload_error(outcome.error)

        self._committing = True
        upload_id = getattr(self.metadata, 'upload_id', None)
        try:
            await self.completion.finalize(self.results, upload_id)
        except CommitFailed:
            await self.completion.cleanup()
            raise

    async def _run_preflight(self) -> UploadMetadata:
        task = asyncio.ensure_future(
            self.preflight.run(self.request, self.plan.part_count)
        )
        self._preflight_task = task
        try:
            return await task
        except asyncio.CancelledError:
            if not self._aborted:
                raise
            # The registration may already have gone through
            await self.completion.cleanup()
            raise UploadAborted()
        except PreflightFailed:
            await self.completion.cleanup()
            raise
        finally:
            self._preflight_task = None

    async def _run_single(self, http: httpx.AsyncClient,
                          metadata: SingleUploadMetadata) -> Outcome:
        size = self.request.size
        aggregator = ProgressAggregator(size, 1, self.on_progress)
        executor = SingleTransferExecutor(
            self.legacy_client or http, self.payload, aggregator, self.timeout,
        )

        task = asyncio.ensure_future(executor.send(metadata.url, metadata.headers, size))
        self.registry.track(1, task)
        try:
            outcome = await task
        except asyncio.CancelledError:
            if not self._aborted:
                raise
            return Fatal(UploadAborted())

        if isinstance(outcome, Success):
            aggregator.commit(1, size)
        return outcome

    async def _run_multipart(self, http: httpx.AsyncClient,
                             metadata: MultipartUploadMetadata) -> Outcome:
        parts = metadata.to_descriptors()
        aggregator = ProgressAggregator(self.request.size, len(parts), self.on_progress)
        executor = PartExecutor(
            http, self.payload, aggregator,
            timeout=self.timeout, is_online=self.is_online,
        )

        self.transfer = TransferSession(
            parts,
            FileChunker(self.request.size, self.plan.chunk_size),
            executor,
            aggregator,
            registry=self.registry,
            backoff=self.backoff,
            clock=self.clock,
            max_connections=self.max_connections,
        )
        outcome = await self.transfer.run()

        if isinstance(outcome, Fatal):
            await self.transfer.wait_closed()
        else:
            self.results = outcome.value
        return outcome

    # === Helpers ===

    def _handle_abort_signal(self):
        self.abort()
        self._detach_signal()

    def _detach_signal(self):
        if self._signal is not None:
            self._signal.remove_listener(self._handle_abort_signal)

    @staticmethod
    def _as_upload_error(error: Exception) -> UploadError:
        if isinstance(error, UploadError):
            return error
        wrapped = UploadError(f"Unexpected upload failure: {error}")
        wrapped.__cause__ = error
        return wrapped


async def upload(session, payload: Payload, **options) -> Optional[str]:
    """Create an Uploader for *payload* and run it."""
    uploader = Uploader(session, payload, **options)
    return await uploader.start()
