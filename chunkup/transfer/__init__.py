"""
Transfer Module - Component Uploads

Handles strategy selection, preflight, part scheduling, retries,
progress and completion of uploads to pre-signed storage URLs.
"""

from .errors import (
    UploadError, ValidationError, PreflightFailed, NetworkOffline,
    ChunkUploadFailed, RetryExhausted, UploadAborted, CreateComponentFailed,
    CommitFailed, CleanupFailed, ServerError,
)
from .protocol import PartDescriptor, PartResult, UploadStrategy, Event
from .strategy import TransferPlan, select_plan
from .retry import BackoffPolicy, Clock, AsyncioClock
from .progress import ProgressAggregator
from .scheduler import TransferSession, SessionState
from .signal import AbortController, AbortSignal
from .uploader import Uploader, upload

__all__ = [
    'UploadError',
    'ValidationError',
    'PreflightFailed',
    'NetworkOffline',
    'ChunkUploadFailed',
    'RetryExhausted',
    'UploadAborted',
    'CreateComponentFailed',
    'CommitFailed',
    'CleanupFailed',
    'ServerError',
    'PartDescriptor',
    'PartResult',
    'UploadStrategy',
    'Event',
    'TransferPlan',
    'select_plan',
    'BackoffPolicy',
    'Clock',
    'AsyncioClock',
    'ProgressAggregator',
    'TransferSession',
    'SessionState',
    'AbortController',
    'AbortSignal',
    'Uploader',
    'upload',
]
