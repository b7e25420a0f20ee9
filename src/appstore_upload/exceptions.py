"""
Exception classes for appstore-connect-upload.
"""

from typing import Optional


class AppStoreConnectError(Exception):
    """Base exception class for App Store Connect API errors."""

    pass


class AuthenticationError(AppStoreConnectError):
    """Raised when authentication fails."""

    pass


class RateLimitError(AppStoreConnectError):
    """Raised when rate limits are exceeded."""

    pass


class ValidationError(AppStoreConnectError):
    """Raised when request validation fails."""

    pass


class NotFoundError(AppStoreConnectError):
    """Raised when requested resource is not found."""

    pass


class PermissionError(AppStoreConnectError):
    """Raised when insufficient permissions for operation."""

    pass


# ===== ASSET UPLOAD ERRORS =====


class UploadError(AppStoreConnectError):
    """Base exception for failures while uploading one part of an asset."""

    pass


class MissingChunkBoundsError(UploadError):
    """Raised when an upload operation has no offset or length."""

    def __init__(self, message: str = "could not establish bounds of upload operation"):
        super().__init__(message)


class MissingUploadDestinationError(UploadError):
    """Raised when an upload operation has no URL or HTTP method."""

    def __init__(
        self, message: str = "could not establish destination of upload operation"
    ):
        super().__init__(message)


class InvalidUploadRequestError(UploadError):
    """Raised when an upload operation cannot be turned into a valid request."""

    pass


class ChunkReadError(UploadError):
    """Raised when the bytes of a part cannot be read from the source."""

    pass


class UploadTransportError(UploadError):
    """Raised when a part could not be delivered (DNS, connection, timeout)."""

    pass


class UploadResponseError(UploadError):
    """Raised when the upload destination answers with a non-2xx status."""

    def __init__(self, status_code: int, reason: str = "", body: str = ""):
        self.status_code = status_code
        self.reason = reason
        self.body = body
        status = f"{status_code} {reason}".strip()
        super().__init__(f"upload failed with status {status}: {body}")


class UploadCancelledError(UploadError):
    """Raised when the upload was cancelled or its deadline expired."""

    pass


class UploadOperationError(AppStoreConnectError):
    """
    Pairs a failed upload operation with the error that stopped it,
    so the part can be identified and retried against a fresh reservation.
    """

    def __init__(self, operation, cause: Exception, index: Optional[int] = None):
        self.operation = operation
        self.cause = cause
        self.index = index
        super().__init__(str(cause))


class UploadFailedError(AppStoreConnectError):
    """
    Raised when one or more parts of an asset failed to upload.

    The message is the first failure; ``errors`` holds every one of them.
    """

    def __init__(self, errors):
        self.errors = list(errors)
        message = str(self.errors[0]) if self.errors else "upload failed"
        super().__init__(message)

    @property
    def first_error(self):
        return self.errors[0] if self.errors else None
