"""Tests for the part scheduler, driven by a scripted executor."""

import asyncio
import random

import pytest

from chunkup.file import FileChunker
from chunkup.transfer import (
    ChunkUploadFailed, PartDescriptor, PartResult, ProgressAggregator,
    RetryExhausted, SessionState, TransferSession, UploadAborted,
)
from chunkup.transfer.executor import ConnectionRegistry, Fatal, Retryable, Success


def descriptors(count):
    return [PartDescriptor(n, f'https://storage.test/part-{n}') for n in range(1, count + 1)]


class ScriptedExecutor:
    """Executor whose outcome per part is scripted; records concurrency."""

    def __init__(self, registry=None, failures=None, delays=None, hang=()):
        self.registry = registry
        self.failures = dict(failures or {})
        self.delays = delays or {}
        self.hang = set(hang)
        self.sends = []
        self.active = 0
        self.max_active = 0
        self.max_registered = 0

    async def send(self, part, offset, length):
        self.sends.append((part.part_number, offset, length))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        if self.registry is not None:
            self.max_registered = max(self.max_registered, len(self.registry))
        try:
            if part.part_number in self.hang:
                await asyncio.Event().wait()
            await asyncio.sleep(self.delays.get(part.part_number, 0))
            if self.failures.get(part.part_number, 0) > 0:
                self.failures[part.part_number] -= 1
                return Retryable(ChunkUploadFailed('boom', part.part_number))
            return Success(PartResult(part.part_number, f'etag-{part.part_number}'))
        finally:
            self.active -= 1


def make_session(count, executor, clock, chunk_size=10, registry=None, **kwargs):
    size = count * chunk_size
    return TransferSession(
        descriptors(count),
        FileChunker(size, chunk_size),
        executor,
        ProgressAggregator(size, count),
        registry=registry,
        clock=clock,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_results_sorted_even_when_completed_out_of_order(clock):
    delays = {n: random.random() / 100 for n in range(1, 9)}
    executor = ScriptedExecutor(delays=delays)
    session = make_session(8, executor, clock)

    outcome = await session.run()

    assert isinstance(outcome, Success)
    assert [r.part_number for r in outcome.value] == list(range(1, 9))
    assert session.state is SessionState.COMPLETED


@pytest.mark.asyncio
async def test_byte_ranges_follow_part_numbers(clock):
    executor = ScriptedExecutor()
    session = make_session(3, executor, clock, chunk_size=10)

    await session.run()

    assert sorted(executor.sends) == [(1, 0, 10), (2, 10, 10), (3, 20, 10)]


@pytest.mark.asyncio
@pytest.mark.parametrize('ceiling', [1, 2, 6])
async def test_connection_ceiling(clock, ceiling):
    registry = ConnectionRegistry()
    executor = ScriptedExecutor(registry=registry, delays={n: 0.001 for n in range(1, 21)})
    session = make_session(20, executor, clock, registry=registry, max_connections=ceiling)

    outcome = await session.run()

    assert isinstance(outcome, Success)
    assert executor.max_active == ceiling
    assert executor.max_registered <= ceiling
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_retried_part_commits_once(clock):
    executor = ScriptedExecutor(failures={2: 2})
    session = make_session(4, executor, clock)

    outcome = await session.run()

    assert isinstance(outcome, Success)
    numbers = [r.part_number for r in outcome.value]
    assert numbers == [1, 2, 3, 4]
    assert [n for n, _, _ in executor.sends].count(2) == 3
    assert clock.delays == [0.2, 0.4]


@pytest.mark.asyncio
async def test_six_failures_still_succeed(clock):
    executor = ScriptedExecutor(failures={3: 6})
    session = make_session(4, executor, clock)

    outcome = await session.run()

    assert isinstance(outcome, Success)
    assert len(outcome.value) == 4
    assert clock.delays == [0.2, 0.4, 0.8, 1.6, 3.2, 6.4]


@pytest.mark.asyncio
async def test_seventh_failure_is_fatal_and_cancels_others(clock):
    registry = ConnectionRegistry()
    executor = ScriptedExecutor(registry=registry, failures={2: 100}, hang={1, 3, 4})
    session = make_session(4, executor, clock, registry=registry)

    outcome = await session.run()
    await session.wait_closed()

    assert isinstance(outcome, Fatal)
    assert isinstance(outcome.error, RetryExhausted)
    assert outcome.error.part_number == 2
    assert outcome.error.attempts == 7
    assert isinstance(outcome.error.__cause__, ChunkUploadFailed)
    assert session.state is SessionState.ABORTED
    assert len(registry) == 0
    assert executor.active == 0


@pytest.mark.asyncio
async def test_abort_cancels_in_flight_parts(clock):
    executor = ScriptedExecutor(hang={1, 2, 3, 4})
    session = make_session(4, executor, clock)

    run = asyncio.ensure_future(session.run())
    await asyncio.sleep(0.01)
    assert session.active_connections == 4

    assert session.abort() is True
    assert session.abort() is False

    outcome = await run
    await session.wait_closed()
    assert isinstance(outcome, Fatal)
    assert isinstance(outcome.error, UploadAborted)
    assert executor.active == 0


@pytest.mark.asyncio
async def test_abort_after_completion_is_noop(clock):
    session = make_session(3, ScriptedExecutor(), clock)
    await session.run()

    assert session.abort() is False
    assert session.state is SessionState.COMPLETED


@pytest.mark.asyncio
async def test_does_not_complete_while_part_is_backing_off(clock):
    class SlowClock:
        async def sleep(self, seconds):
            await asyncio.sleep(0.01)

    executor = ScriptedExecutor(failures={4: 1})
    session = make_session(4, executor, SlowClock())

    outcome = await session.run()

    assert isinstance(outcome, Success)
    assert [r.part_number for r in outcome.value] == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_unexpected_executor_error_is_fatal(clock):
    class BrokenExecutor:
        async def send(self, part, offset, length):
            raise OSError('disk gone')

    session = make_session(3, BrokenExecutor(), clock)
    outcome = await session.run()

    assert isinstance(outcome, Fatal)
    assert isinstance(outcome.error, OSError)
