"""
Part Scheduler

Design Decision: Dispatch Model
===============================

Options Considered:
1. Assign parts to a fixed set of worker tasks up front
   - Simple, but a slow part holds up everything behind it on its worker
2. A pool of N long-running workers pulling from a queue
   - Good, but retries that are sleeping still occupy a worker
3. One task per part, started by a "drive" step whenever a slot frees up
   - Slots are only held while bytes are actually moving
   - Parts in back-off hold no slot

Decision: Drive step (option 3)
- drive() runs on start and every time a part settles
- It fills free slots up to the connection ceiling from the backlog
- When the backlog is empty, nothing is open and nothing is sleeping
  in back-off, the session is complete

Everything runs on one event loop; the backlog and the connection
registry are only touched from done-callbacks and drive(), never from
two threads.

Session Flow:
    IDLE --run()--> DRAINING --all parts committed--> COMPLETED
                        |
                        +--fatal error / abort--> ABORTED
"""

import asyncio
import logging
from collections import deque
from enum import Enum
from functools import partial
from typing import Deque, Dict, List, Optional, Set, Tuple

from ..file.chunker import FileChunker
from .errors import RetryExhausted, UploadAborted
from .executor import ConnectionRegistry, Fatal, Outcome, PartExecutor, Retryable, Success
from .progress import ProgressAggregator
from .protocol import PartDescriptor, PartResult
from .retry import AsyncioClock, BackoffPolicy, Clock

logger = logging.getLogger(__name__)

# Simultaneous part uploads; browsers and most proxies allow ~6 per origin
DEFAULT_MAX_CONNECTIONS = 6


class SessionState(Enum):
    IDLE = "IDLE"
    DRAINING = "DRAINING"
    COMPLETED = "COMPLETED"
    ABORTED = "ABORTED"


class PartBacklog:
    """
    Parts waiting to be sent.

    Descriptors live in a fixed arena; the queue only holds arena indices,
    so a part can be taken out for sending and put back for a retry
    without copying or searching.
    """

    def __init__(self, parts: List[PartDescriptor]):
        self._arena: List[PartDescriptor] = list(parts)
        self._pending: Deque[int] = deque(range(len(self._arena)))

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def total(self) -> int:
        return len(self._arena)

    def pop(self) -> Tuple[int, PartDescriptor]:
        index = self._pending.popleft()
        return index, self._arena[index]

    def push(self, index: int):
        self._pending.append(index)


class TransferSession:
    """
    Lifecycle of one multipart upload.

    ``run()`` resolves exactly once, with Success(sorted results) or
    Fatal(error).
    """

    def __init__(self, parts: List[PartDescriptor], chunker: FileChunker,
                 executor: PartExecutor, aggregator: ProgressAggregator,
                 registry: Optional[ConnectionRegistry] = None,
                 backoff: Optional[BackoffPolicy] = None,
                 clock: Optional[Clock] = None,
                 max_connections: int = DEFAULT_MAX_CONNECTIONS):
        if max_connections < 1:
            raise ValueError("max_connections must be at least 1")

        self.backlog = PartBacklog(parts)
        self.chunker = chunker
        self.executor = executor
        self.aggregator = aggregator
        self.registry = registry or ConnectionRegistry()
        self.backoff = backoff or BackoffPolicy()
        self.clock = clock or AsyncioClock()
        self.max_connections = max_connections

        self.state = SessionState.IDLE
        self.results: Dict[int, PartResult] = {}
        self.failures: Dict[int, int] = {}

        self._parked: Set[asyncio.Task] = set()
        self._cancelled: List[asyncio.Task] = []
        self._finished: Optional[asyncio.Future] = None

    @property
    def active_connections(self) -> int:
        return len(self.registry)

    async def run(self) -> Outcome:
        """Send every part; return once the session completes or aborts."""
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"Session already {self.state.value.lower()}")

        self._finished = asyncio.get_running_loop().create_future()
        self.state = SessionState.DRAINING
        logger.debug(f"Sending {self.backlog.total} parts, "
                     f"{self.max_connections} at a time")
        self._drive()
        return await self._finished

    def abort(self, error: Optional[Exception] = None) -> bool:
        """
        Stop the session and cancel every open connection.

        Returns False if the session had already finished.
        """
        if self.state is SessionState.IDLE:
            self.state = SessionState.ABORTED
            return True
        return self._fail(error or UploadAborted())

    async def wait_closed(self):
        """Wait until every cancelled connection and back-off timer has unwound."""
        pending = self._cancelled + list(self._parked)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # === Drive step ===

    def _drive(self):
        while self.state is SessionState.DRAINING:
            if len(self.registry) >= self.max_connections:
                return

            if not len(self.backlog):
                if not len(self.registry) and not self._parked:
                    self._complete()
                return

            index, part = self.backlog.pop()
            offset, length = self.chunker.get_chunk_bounds(part.part_number)

            task = asyncio.ensure_future(self.executor.send(part, offset, length))
            self.registry.track(part.part_number, task)
            task.add_done_callback(partial(self._on_part_done, index, part, length))

    def _on_part_done(self, index: int, part: PartDescriptor, length: int,
                      task: asyncio.Task):
        if self.state is not SessionState.DRAINING:
            if not task.cancelled() and task.exception() is not None:
                logger.debug(f"Part #{part.part_number} failed after abort: {task.exception()}")
            return

        try:
            if task.cancelled():
                self._fail(UploadAborted(f"Part #{part.part_number} was cancelled"))
                return

            error = task.exception()
            outcome = Fatal(error) if error is not None else task.result()

            if isinstance(outcome, Success):
                self._commit(part, length, outcome.value)
            elif isinstance(outcome, Retryable):
                self._retry(index, part, outcome.error)
            else:
                self._fail(outcome.error)
                return

            self._drive()
        except Exception as e:
            logger.exception(f"Error settling part #{part.part_number}")
            self._fail(e)

    # === Settling ===

    def _commit(self, part: PartDescriptor, length: int, result: PartResult):
        if part.part_number in self.results:
            logger.warning(f"Part #{part.part_number} committed twice, keeping the first")
            return
        self.results[part.part_number] = result
        self.aggregator.commit(part.part_number, length)

    def _retry(self, index: int, part: PartDescriptor, error: Exception):
        failures = self.failures.get(part.part_number, 0) + 1
        self.failures[part.part_number] = failures
        self.aggregator.reset(part.part_number)

        if not self.backoff.should_retry(failures):
            logger.error(f"Part#{part.part_number} failed to upload, giving up")
            exhausted = RetryExhausted(part.part_number, failures)
            exhausted.__cause__ = error
            self._fail(exhausted)
            return

        delay = self.backoff.delay(failures)
        logger.warning(
            f"Part#{part.part_number} failed to upload ({error}), "
            f"backing off {delay * 1000:.0f}ms before retrying..."
        )
        timer = asyncio.ensure_future(self._requeue_after(index, delay))
        self._parked.add(timer)
        timer.add_done_callback(self._parked.discard)

    async def _requeue_after(self, index: int, delay: float):
        await self.clock.sleep(delay)
        if self.state is not SessionState.DRAINING:
            return
        self.backlog.push(index)
        self._drive()

    # === Terminal transitions ===

    def _complete(self):
        self.state = SessionState.COMPLETED
        results = sorted(self.results.values(), key=lambda r: r.part_number)
        logger.debug(f"All {len(results)} parts uploaded")
        self._finished.set_result(Success(results))

    def _fail(self, error: Exception) -> bool:
        if self.state is not SessionState.DRAINING:
            return False

        self.state = SessionState.ABORTED
        self._cancelled = self.registry.cancel_all()
        for timer in list(self._parked):
            timer.cancel()
        logger.debug(f"Session aborted, cancelled {len(self._cancelled)} connections: {error}")
        self._finished.set_result(Fatal(error))
        return True
