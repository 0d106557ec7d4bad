"""
Payload Sources

A payload is any byte source whose total length is known up front.
Parts are read lazily by offset, so a 50GB file is never held in memory;
only the ranges currently in flight are.
"""

import os
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles

# Size of the blocks handed to the HTTP client; each block read
# is one progress tick.
STREAM_BLOCK_SIZE = 64 * 1024


class Payload:
    """Base class for byte sources with a known size."""

    name: Optional[str] = None

    @property
    def size(self) -> int:
        raise NotImplementedError

    async def read(self, offset: int, length: int) -> bytes:
        """Read *length* bytes starting at *offset*."""
        raise NotImplementedError

    async def stream(self, offset: int, length: int,
                     block_size: int = STREAM_BLOCK_SIZE) -> AsyncIterator[bytes]:
        """Yield the range in blocks of at most *block_size* bytes."""
        data = await self.read(offset, length)
        for start in range(0, len(data), block_size):
            yield data[start:start + block_size]


class BytesPayload(Payload):
    """In-memory payload."""

    def __init__(self, data: bytes, name: Optional[str] = None):
        self._data = bytes(data)
        self.name = name

    @property
    def size(self) -> int:
        return len(self._data)

    async def read(self, offset: int, length: int) -> bytes:
        return self._data[offset:offset + length]


class FilePayload(Payload):
    """
    Payload backed by a file on disk.

    Every read opens its own handle so concurrent parts never share
    a file position.
    """

    def __init__(self, path: Path, name: Optional[str] = None):
        self.path = Path(path)
        self.name = name or self.path.name
        self._size = os.path.getsize(self.path)

    @property
    def size(self) -> int:
        return self._size

    async def read(self, offset: int, length: int) -> bytes:
        async with aiofiles.open(self.path, 'rb') as f:
            await f.seek(offset)
            return await f.read(length)

    async def stream(self, offset: int, length: int,
                     block_size: int = STREAM_BLOCK_SIZE) -> AsyncIterator[bytes]:
        remaining = length
        async with aiofiles.open(self.path, 'rb') as f:
            await f.seek(offset)
            while remaining > 0:
                block = await f.read(min(block_size, remaining))
                if not block:
                    break
                remaining -= len(block)
                yield block
