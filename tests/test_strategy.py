"""Tests for strategy selection and back-off policy."""

import logging
import math

import pytest

from chunkup.file.chunker import GB, MB, get_chunk_size
from chunkup.transfer import BackoffPolicy, UploadStrategy, select_plan


SIZES = [0, 1, 1 * MB, 10 * MB, 10 * MB + 1, 15 * MB, 20 * MB, 999 * MB, 3 * GB, 500 * GB]


@pytest.mark.parametrize('size', SIZES)
def test_part_count_and_strategy(size):
    plan = select_plan(size)
    chunk_size = get_chunk_size(size)
    part_count = math.ceil(size / chunk_size)

    assert plan.chunk_size == chunk_size
    if part_count <= 2:
        assert plan.strategy is UploadStrategy.SINGLE
        assert plan.part_count is None
    else:
        assert plan.strategy is UploadStrategy.MULTIPART
        assert plan.part_count == part_count


def test_small_payload_is_single():
    plan = select_plan(1 * MB, chunk_size=5 * MB)
    assert plan.strategy is UploadStrategy.SINGLE
    assert not plan.is_multipart


def test_twenty_megabytes_is_four_parts():
    plan = select_plan(20 * MB, chunk_size=5 * MB)
    assert plan.strategy is UploadStrategy.MULTIPART
    assert plan.part_count == 4


def test_legacy_client_forces_single(caplog):
    with caplog.at_level(logging.WARNING):
        plan = select_plan(200 * MB, force_single=True)

    assert plan.strategy is UploadStrategy.SINGLE
    assert plan.part_count is None
    assert 'not compatible with multi-part uploads' in caplog.text


class TestBackoffPolicy:
    def test_delays_double(self):
        policy = BackoffPolicy()
        assert [policy.delay(n) for n in range(1, 7)] == [0.2, 0.4, 0.8, 1.6, 3.2, 6.4]

    def test_retry_budget(self):
        policy = BackoffPolicy()
        assert policy.should_retry(6)
        assert not policy.should_retry(7)

    def test_jitter_only_adds(self):
        policy = BackoffPolicy(jitter=0.5)
        for _ in range(20):
            assert 0.2 <= policy.delay(1) <= 0.3
