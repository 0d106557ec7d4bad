"""
Upload Completion and Cleanup

On success the parts are committed and the component gets a location
record. On failure the component registered during preflight is deleted
so no half-uploaded component is left behind.
"""

import asyncio
import logging
import uuid
from typing import Callable, List, Optional

from .errors import CleanupFailed, CommitFailed
from .protocol import (
    COMPONENT_ADDED_TOPIC, COMPONENT_ENTITY_TYPE, LOCATION_ENTITY_TYPE,
    SERVER_LOCATION_ID, Event, PartResult, complete_multipart_operation,
    create_operation,
)

logger = logging.getLogger(__name__)


def build_manifest(results: List[PartResult]) -> List[PartResult]:
    """
    Order committed parts for the commit call.

    Parts finish in any order; the remote API requires ascending part
    numbers without duplicates.
    """
    manifest = sorted(results, key=lambda r: r.part_number)
    numbers = [r.part_number for r in manifest]
    if len(set(numbers)) != len(numbers):
        raise CommitFailed(f"Duplicate part numbers in manifest: {numbers}")
    return manifest


class CompletionCoordinator:
    """Finalizes a successful upload or undoes a failed one."""

    def __init__(self, session, component_id: str,
                 location_id: str = SERVER_LOCATION_ID,
                 entity_type: str = COMPONENT_ENTITY_TYPE,
                 location_entity_type: str = LOCATION_ENTITY_TYPE,
                 on_cleanup_error: Optional[Callable[[CleanupFailed], None]] = None):
        self.session = session
        self.component_id = component_id
        self.location_id = location_id
        self.entity_type = entity_type
        self.location_entity_type = location_entity_type
        self.on_cleanup_error = on_cleanup_error

        self._cleanup_task: Optional[asyncio.Task] = None

    async def finalize(self, results: Optional[List[PartResult]] = None,
                       upload_id: Optional[str] = None):
        """
        Commit the uploaded parts (multipart only) and record the location.

        Raises:
            CommitFailed: the commit call failed
        """
        logger.debug("Completing upload")
        operations = []

        if results:
            manifest = build_manifest(results)
            operations.append(
                complete_multipart_operation(upload_id, self.component_id, manifest)
            )

        operations.append(create_operation(self.location_entity_type, {
            'id': str(uuid.uuid4()),
            'component_id': self.component_id,
            'resource_identifier': self.component_id,
            'location_id': self.location_id,
        }))

        try:
            await self.session.call(operations)
        except Exception as e:
            raise CommitFailed(f"Failed to complete upload: {e}") from e

        # Let listeners do additional work on the new component (e.g. encoding)
        if getattr(self.session, 'supports_events', False):
            try:
                await self.session.publish(Event(COMPONENT_ADDED_TOPIC, {
                    'component_id': self.component_id,
                    'location_id': self.location_id,
                }))
            except Exception as e:
                logger.warning(f"Failed to publish {COMPONENT_ADDED_TOPIC}: {e}")

    async def cleanup(self) -> Optional[CleanupFailed]:
        """
        Delete the component. Runs the delete at most once; later calls
        wait for the first one. Never raises.

        Returns:
            CleanupFailed if the delete failed, else None
        """
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.ensure_future(self._delete_component())
        return await asyncio.shield(self._cleanup_task)

    @property
    def cleaned_up(self) -> bool:
        return self._cleanup_task is not None

    async def _delete_component(self) -> Optional[CleanupFailed]:
        logger.debug(f"Cleaning up component {self.component_id}")
        try:
            await self.session.delete(self.entity_type, [self.component_id])
        except Exception as e:
            failure = CleanupFailed(self.component_id, e)
            logger.error(str(failure))
            if self.on_cleanup_error:
                self.on_cleanup_error(failure)
            return failure
        return None
