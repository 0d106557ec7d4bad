"""
Payload Chunker

Design Decision: Chunk Size
===========================

Options Considered:
| Size    | Pros                          | Cons                           |
|---------|-------------------------------|--------------------------------|
| 5MB     | Minimum the storage accepts   | Too many parts past ~50GB      |
| 16MB    | Fewer requests on big files   | Coarse retries                 |
| 64MB    | Very low overhead             | Expensive to resend one part   |

Decision: Size-tiered chunks
- 5MB for everything up to 1GB (the common case)
- 16MB up to 10GB, 64MB up to 100GB
- Beyond that, grow until the part count fits under 10,000
  (the remote multipart API refuses more parts than that)

Chunking Strategy: Fixed-Size
- Part N always covers bytes (N-1)*chunk_size .. N*chunk_size
- Retrying a part re-reads exactly the same range
"""

import math
from typing import List, Tuple

MB = 1024 * 1024
GB = 1024 * MB

# Smallest part the storage accepts (except the last one)
MIN_CHUNK_SIZE = 5 * MB

# Hard limit of the remote multipart API
MAX_PARTS = 10_000

# (upper bound of declared size, chunk size)
CHUNK_SIZE_TIERS: List[Tuple[int, int]] = [
    (1 * GB, MIN_CHUNK_SIZE),
    (10 * GB, 16 * MB),
    (100 * GB, 64 * MB),
]


def get_chunk_size(file_size: int) -> int:
    """Return the part size in bytes to use for a payload of *file_size*."""
    for limit, chunk_size in CHUNK_SIZE_TIERS:
        if file_size <= limit:
            return chunk_size

    # Round up to a whole MB so every part but the last has the same size
    return math.ceil(file_size / MAX_PARTS / MB) * MB


class FileChunker:
    """
    Splits a payload of known size into fixed-size, 1-based parts.

    The chunker never reads data itself; it only answers "which bytes
    belong to part N", which is what both the scheduler and retries need.
    """

    def __init__(self, file_size: int, chunk_size: int = None):
        self.file_size = file_size
        self.chunk_size = chunk_size or get_chunk_size(file_size)

    def get_chunk_count(self) -> int:
        """Calculate number of parts for the payload."""
        return (self.file_size + self.chunk_size - 1) // self.chunk_size

    def get_chunk_bounds(self, part_number: int) -> Tuple[int, int]:
        """
        Get byte range for a 1-based part number.

        Returns:
            (start_offset, length) tuple, length clamped to the payload end
        """
        if part_number < 1:
            raise ValueError(f"Part numbers start at 1, got {part_number}")

        start = (part_number - 1) * self.chunk_size
        length = max(0, min(self.chunk_size, self.file_size - start))
        return start, length
