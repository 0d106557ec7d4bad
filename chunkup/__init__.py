"""
chunkup - Component uploads to pre-signed storage

Chooses between a single PUT and a parallel multipart upload, retries
failed parts with back-off, reports progress, supports cancellation and
deletes the component again when an upload fails.
"""

from .file import BytesPayload, FilePayload, Payload
from .session import RpcSession, Session
from .transfer import AbortController, AbortSignal, Uploader, UploadError, upload

__version__ = '0.1.0'

__all__ = [
    'BytesPayload',
    'FilePayload',
    'Payload',
    'RpcSession',
    'Session',
    'AbortController',
    'AbortSignal',
    'Uploader',
    'UploadError',
    'upload',
]
