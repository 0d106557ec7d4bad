"""
Upload Strategy Selection

Design Decision: When to Go Multipart
=====================================

Multipart uploads cost two extra round trips (the part URLs come back in
preflight, and a commit call is needed at the end) plus per-part request
overhead. For payloads that split into only one or two parts that overhead
buys nothing, so they go as a single PUT.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..file.chunker import FileChunker
from .protocol import UploadStrategy

logger = logging.getLogger(__name__)

# Part counts at or below this collapse to a single PUT
SINGLE_PART_THRESHOLD = 2


@dataclass(frozen=True)
class TransferPlan:
    """Derived once from the declared size."""
    strategy: UploadStrategy
    chunk_size: int
    part_count: Optional[int]  # None for SINGLE

    @property
    def is_multipart(self) -> bool:
        return self.strategy is UploadStrategy.MULTIPART


def select_plan(file_size: int, chunk_size: Optional[int] = None,
                force_single: bool = False) -> TransferPlan:
    """
    Decide between a single PUT and a multipart upload.

    Args:
        file_size: Declared payload size in bytes
        chunk_size: Override for the size-tiered chunk policy
        force_single: Set when the caller hands in a legacy
            single-connection client
    """
    chunker = FileChunker(file_size, chunk_size)
    part_count = chunker.get_chunk_count()

    if force_single:
        logger.warning(
            "A legacy single-connection client was supplied; it is not "
            "compatible with multi-part uploads, use an abort signal to "
            "cancel uploads instead."
        )
        return TransferPlan(UploadStrategy.SINGLE, chunker.chunk_size, None)

    if part_count <= SINGLE_PART_THRESHOLD:
        return TransferPlan(UploadStrategy.SINGLE, chunker.chunk_size, None)

    return TransferPlan(UploadStrategy.MULTIPART, chunker.chunk_size, part_count)
