"""Error taxonomy and the fallback policy for remote failures.

Every failure the persistence core can meet is mapped onto exactly one
``FailureClass``. Callers use :func:`classify_error` to decide whether a
remote failure should silently degrade to the local tier or be surfaced.
"""

from enum import Enum

import httpx

# HTTP statuses that mean "remote unusable right now" rather than "bad request"
FALLBACK_STATUS_CODES = frozenset({401, 403, 502, 503, 504})


class CodeflowError(Exception):
    """Base class for all codeflow errors."""


class ValidationError(CodeflowError):
    """Input rejected before any storage tier was touched."""


class LocalStorageError(CodeflowError):
    """The on-device storage medium failed. Always fatal."""


class RemoteStoreError(CodeflowError):
    """A remote store operation failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConnectivityError(RemoteStoreError):
    """Network or service unavailable (connect failure, timeout, 5xx)."""


class AuthorizationError(RemoteStoreError):
    """The remote refused the operation for this user."""


class RemoteRequestError(RemoteStoreError):
    """The remote rejected the request for any other reason."""


class FailureClass(Enum):
    """Outcome of classifying an error."""

    RETRYABLE_LOCAL_FALLBACK = "retryable_local_fallback"
    FATAL = "fatal"


def classify_error(error: BaseException) -> FailureClass:
    """Decide whether an error allows falling back to the local tier.

    Permission-denied and service-unavailable conditions fall back; every
    other error, including unknown ones, is fatal.

    Args:
        error: Any exception raised by a storage operation.

    Returns:
        The FailureClass for the error.
    """
    if isinstance(error, (ConnectivityError, AuthorizationError)):
        return FailureClass.RETRYABLE_LOCAL_FALLBACK

    if isinstance(error, RemoteStoreError):
        if error.status_code in FALLBACK_STATUS_CODES:
            return FailureClass.RETRYABLE_LOCAL_FALLBACK
        return FailureClass.FATAL

    # Raw transport errors that escaped a client wrapper
    if isinstance(error, (httpx.ConnectError, httpx.TimeoutException)):
        return FailureClass.RETRYABLE_LOCAL_FALLBACK

    if isinstance(error, httpx.HTTPStatusError):
        if error.response.status_code in FALLBACK_STATUS_CODES:
            return FailureClass.RETRYABLE_LOCAL_FALLBACK
        return FailureClass.FATAL

    if isinstance(error, (ConnectionError, TimeoutError)):
        return FailureClass.RETRYABLE_LOCAL_FALLBACK

    return FailureClass.FATAL
