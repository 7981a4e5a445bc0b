"""
Exception hierarchy for the transfer service.
"""

from typing import Optional

from .types import TransferErrorType


class TransferError(Exception):
    """Base exception for all transfer-related errors."""

    error_type = TransferErrorType.UNKNOWN

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(message)


class InvalidInputError(TransferError):
    """Malformed or missing input at submission."""

    error_type = TransferErrorType.INVALID_INPUT


class NotFoundError(TransferError):
    """Unknown job id, absent object, or an unmet conditional update."""

    error_type = TransferErrorType.NOT_FOUND


class DuplicateIdError(TransferError):
    """A job with the same id already exists."""

    error_type = TransferErrorType.RECORD_STORE


class RecordStoreError(TransferError):
    """The job record store could not complete an operation."""

    error_type = TransferErrorType.RECORD_STORE


class UpstreamFetchError(TransferError):
    """Non-success status or transport failure fetching the source URL."""

    error_type = TransferErrorType.UPSTREAM_FETCH

    def __init__(
        self, message: str, status_code: Optional[int] = None, original_error: Optional[Exception] = None
    ):
        self.status_code = status_code
        super().__init__(message, original_error)


class StorageError(TransferError):
    """Failure writing to, probing, or signing against the object store."""

    error_type = TransferErrorType.STORAGE

    def __init__(self, message: str, error_code: Optional[str] = None, original_error: Optional[Exception] = None):
        self.error_code = error_code
        super().__init__(message, original_error)


class ServiceUnavailableError(TransferError):
    """The service is shutting down and accepts no new jobs."""

    error_type = TransferErrorType.UNAVAILABLE
