"""Tests for commit and cleanup."""

import asyncio

import pytest

from chunkup.transfer import CleanupFailed, CommitFailed, PartResult
from chunkup.transfer.completion import CompletionCoordinator, build_manifest


def test_manifest_sorted_by_part_number():
    results = [PartResult(3, 'c'), PartResult(1, 'a'), PartResult(2, 'b')]
    assert [r.part_number for r in build_manifest(results)] == [1, 2, 3]


def test_manifest_rejects_duplicates():
    with pytest.raises(CommitFailed):
        build_manifest([PartResult(1, 'a'), PartResult(1, 'b')])


@pytest.mark.asyncio
async def test_finalize_multipart(session):
    coordinator = CompletionCoordinator(session, 'component-1', location_id='loc-1')

    await coordinator.finalize([PartResult(2, 'b'), PartResult(1, 'a')], 'upload-9')

    [batch] = session.calls
    commit, location = batch
    assert commit == {
        'action': 'complete_multipart_upload',
        'upload_id': 'upload-9',
        'component_id': 'component-1',
        'parts': [{'ETag': 'a', 'PartNumber': 1}, {'ETag': 'b', 'PartNumber': 2}],
    }
    assert location['entity_type'] == 'ComponentLocation'
    assert location['entity_data']['component_id'] == 'component-1'
    assert location['entity_data']['resource_identifier'] == 'component-1'
    assert location['entity_data']['location_id'] == 'loc-1'

    [event] = session.published
    assert event.topic == 'ftrack.location.component-added'
    assert event.data == {'component_id': 'component-1', 'location_id': 'loc-1'}


@pytest.mark.asyncio
async def test_finalize_single_only_adds_location(session):
    coordinator = CompletionCoordinator(session, 'component-1')
    await coordinator.finalize()
    assert session.actions() == [['create']]


@pytest.mark.asyncio
async def test_finalize_failure(session):
    session.fail_actions.add('complete_multipart_upload')
    coordinator = CompletionCoordinator(session, 'component-1')

    with pytest.raises(CommitFailed):
        await coordinator.finalize([PartResult(1, 'a')], 'upload-9')
    assert session.published == []


@pytest.mark.asyncio
async def test_cleanup_runs_once(session):
    coordinator = CompletionCoordinator(session, 'component-1')

    results = await asyncio.gather(coordinator.cleanup(), coordinator.cleanup())
    await coordinator.cleanup()

    assert results == [None, None]
    assert session.deletes == [('FileComponent', ['component-1'])]
    assert coordinator.cleaned_up


@pytest.mark.asyncio
async def test_cleanup_failure_is_reported_not_raised(session):
    session.fail_delete = True
    reported = []
    coordinator = CompletionCoordinator(session, 'component-1', on_cleanup_error=reported.append)

    failure = await coordinator.cleanup()

    assert isinstance(failure, CleanupFailed)
    assert reported == [failure]
    assert failure.component_id == 'component-1'
