"""Tests for progress aggregation."""

from chunkup.transfer import ProgressAggregator


def make(total_size, total_parts):
    reported = []
    return ProgressAggregator(total_size, total_parts, reported.append), reported


def test_in_flight_and_committed_bytes_add_up():
    aggregator, reported = make(400, 4)

    aggregator.update(1, 50)
    aggregator.update(2, 50)
    assert reported[-1] == 25

    aggregator.commit(1, 100)
    assert aggregator.progress.committed_bytes == 100
    assert 1 not in aggregator.progress.in_flight
    assert reported[-1] == 37


def test_commit_does_not_double_count():
    aggregator, reported = make(400, 4)

    aggregator.update(1, 100)
    aggregator.commit(1, 100)
    aggregator.commit(1, 100)
    aggregator.update(1, 100)

    assert aggregator.progress.committed_bytes == 100
    assert aggregator.progress.committed_parts == 1
    assert reported == [25]


def test_progress_never_regresses_after_reset():
    aggregator, reported = make(100, 2)

    aggregator.update(1, 40)
    aggregator.reset(1)
    aggregator.update(1, 10)
    aggregator.update(1, 45)

    assert reported == [40, 45]
    assert reported == sorted(reported)


def test_hundred_only_after_last_commit():
    aggregator, reported = make(200, 2)

    aggregator.update(1, 100)
    aggregator.update(2, 100)
    assert aggregator.percent == 99

    aggregator.commit(1, 100)
    assert aggregator.percent == 99

    aggregator.commit(2, 100)
    assert reported[-1] == 100
    assert reported.count(100) == 1


def test_empty_payload():
    aggregator, reported = make(0, 1)
    aggregator.update(1, 0)
    assert reported == []
    aggregator.commit(1, 0)
    assert reported == [100]


def test_progress_is_bounded_by_size():
    aggregator, reported = make(100, 2)
    aggregator.update(1, 500)
    assert aggregator.progress.sent_bytes == 100
    assert aggregator.percent == 99
