"""
Upload Preflight

Registers the component and asks for transfer coordinates in one batched
call. Nothing is sent to storage until this succeeds.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as ModelValidationError

from .errors import PreflightFailed
from .protocol import (
    COMPONENT_ENTITY_TYPE, MultipartUploadMetadata, UploadMetadata,
    create_operation, get_upload_metadata_operation, parse_upload_metadata,
)

logger = logging.getLogger(__name__)


@dataclass
class TransferRequest:
    """Everything needed to register and send one payload."""
    component_id: str
    name: str
    file_type: str
    size: int
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def file_name(self) -> str:
        return f"{self.name}{self.file_type}"

    def component_data(self) -> Dict[str, Any]:
        return {
            **self.data,
            'id': self.component_id,
            'name': self.name,
            'file_type': self.file_type,
            'size': self.size,
        }


class PreflightCoordinator:
    """Runs the registration + coordinates round trip."""

    def __init__(self, session, entity_type: str = COMPONENT_ENTITY_TYPE):
        self.session = session
        self.entity_type = entity_type

    async def run(self, request: TransferRequest,
                  part_count: Optional[int]) -> UploadMetadata:
        """
        Register *request* and fetch where to send its bytes.

        Raises:
            PreflightFailed: the call failed or the answer was unusable
        """
        logger.debug("Registering component and fetching upload metadata.")

        operations = [
            create_operation(self.entity_type, request.component_data()),
            get_upload_metadata_operation(
                file_name=request.file_name,
                file_size=request.size,
                component_id=request.component_id,
                parts=part_count,
            ),
        ]

        try:
            responses = await self.session.call(operations)
        except Exception as e:
            raise PreflightFailed(f"Preflight call failed: {e}") from e

        if not isinstance(responses, list) or len(responses) != len(operations):
            raise PreflightFailed(
                f"Expected {len(operations)} preflight responses, got {responses!r}"
            )

        try:
            metadata = parse_upload_metadata(responses[1])
        except (ModelValidationError, TypeError) as e:
            raise PreflightFailed(f"Malformed upload metadata: {e}") from e

        if isinstance(metadata, MultipartUploadMetadata):
            self._check_parts(metadata, part_count)

        return metadata

    @staticmethod
    def _check_parts(metadata: MultipartUploadMetadata,
                     part_count: Optional[int]):
        """Part numbers must be exactly 1..part_count; each one covers a fixed byte range."""
        numbers: List[int] = sorted(part.part_number for part in metadata.urls)
        if not numbers:
            raise PreflightFailed("Server returned no part URLs")
        if numbers != list(range(1, len(numbers) + 1)):
            raise PreflightFailed(f"Part numbers are not contiguous: {numbers}")
        if part_count is not None and len(numbers) != part_count:
            raise PreflightFailed(
                f"Requested {part_count} parts, server returned {len(numbers)}"
            )
