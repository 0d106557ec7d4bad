"""
File Module - Payloads, Chunking, and Naming

This module handles the byte-level side of an upload.
"""

from .chunker import FileChunker, get_chunk_size, MIN_CHUNK_SIZE, MAX_PARTS
from .payload import Payload, BytesPayload, FilePayload
from .naming import normalize_name, split_file_extension

__all__ = [
    'FileChunker',
    'get_chunk_size',
    'MIN_CHUNK_SIZE',
    'MAX_PARTS',
    'Payload',
    'BytesPayload',
    'FilePayload',
    'normalize_name',
    'split_file_extension',
]
