"""Upload error types."""

from typing import Optional


class UploadError(Exception):
    """Base class for upload errors.

    ``code`` is a stable machine-readable identifier callers can branch on.
    """

    code = 'UPLOAD_ERROR'

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationError(UploadError):
    """Request cannot be built (e.g. no display name)."""

    code = 'VALIDATION_ERROR'


class PreflightFailed(UploadError):
    """Registering the component or fetching upload coordinates failed."""

    code = 'PREFLIGHT_FAILED'


class NetworkOffline(UploadError):
    """Connectivity is known to be down; no connection was opened."""

    code = 'NETWORK_OFFLINE'

    def __init__(self, message: str = 'System is offline'):
        super().__init__(message)


class ChunkUploadFailed(UploadError):
    """A single part failed; retryable."""

    code = 'CHUNK_UPLOAD_FAILED'

    def __init__(self, message: str, part_number: int,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.part_number = part_number
        self.status_code = status_code


class RetryExhausted(UploadError):
    """A part kept failing after every retry."""

    code = 'RETRY_EXHAUSTED'

    def __init__(self, part_number: int, attempts: int):
        super().__init__(f"Part #{part_number} failed {attempts} times, giving up")
        self.part_number = part_number
        self.attempts = attempts


class UploadAborted(UploadError):
    """The upload was cancelled by the caller or an abort signal."""

    code = 'UPLOAD_ABORTED'

    def __init__(self, message: str = 'Upload aborted by client'):
        super().__init__(message)


class CreateComponentFailed(UploadError):
    """The single-part transfer was rejected or could not be sent."""

    code = 'CREATE_COMPONENT_FAILED'

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CommitFailed(UploadError):
    """Finalizing the upload (manifest commit / location record) failed."""

    code = 'COMMIT_FAILED'


class CleanupFailed(UploadError):
    """Deleting the component after a failure did not succeed.

    Reported on the side; never replaces the error that caused cleanup.
    """

    code = 'CLEANUP_FAILED'

    def __init__(self, component_id: str, cause: BaseException):
        super().__init__(f"Failed to delete component {component_id}: {cause}")
        self.component_id = component_id
        self.cause = cause


class ServerError(UploadError):
    """The RPC endpoint answered with an exception payload."""

    code = 'SERVER_ERROR'

    def __init__(self, message: str, exception: str = '',
                 error_code: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message, code=error_code)
        self.exception = exception
        self.status_code = status_code
