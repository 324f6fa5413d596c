"""Error categories for document-store and import failures.

Store adapters raise ``StoreError`` subclasses that already carry their
``ErrorKind``. ``classify_error`` is the one place that maps anything else
(untyped collaborator errors) onto the same closed set.
"""

import re
import sqlite3
from enum import Enum
from typing import Optional

import requests  # type: ignore[import-untyped]

from catalog.config import RETRY_STATUS_CODES

__all__ = [
    "ErrorKind",
    "StoreError",
    "RateLimitError",
    "ValidationError",
    "DocumentNotFoundError",
    "classify_error",
]


class ErrorKind(str, Enum):
    RETRYABLE = "retryable"
    FATAL = "fatal"
    VALIDATION = "validation"


class StoreError(Exception):
    """A document-store failure with a known category."""

    kind = ErrorKind.FATAL

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(StoreError):
    kind = ErrorKind.RETRYABLE


class ValidationError(StoreError):
    kind = ErrorKind.VALIDATION


class DocumentNotFoundError(ValidationError):
    pass


# Message fragments used by collaborators that only expose text
_RATE_LIMIT_MARKERS = ("rate limit", "too many requests")
# A bare 429 status code, not digits inside an id or number
_RATE_LIMIT_STATUS_RE = re.compile(r"(?<![\w.])429(?![\w.])")


def classify_error(error: BaseException) -> ErrorKind:
    """Map any exception onto an ErrorKind."""
    if isinstance(error, StoreError):
        return error.kind
    if isinstance(error, requests.exceptions.HTTPError) and error.response is not None:
        if error.response.status_code in RETRY_STATUS_CODES:
            return ErrorKind.RETRYABLE
        return ErrorKind.FATAL
    if isinstance(error, sqlite3.OperationalError) and "locked" in str(error).lower():
        return ErrorKind.RETRYABLE

    message = str(error).lower()
    if any(marker in message for marker in _RATE_LIMIT_MARKERS) or _RATE_LIMIT_STATUS_RE.search(message):
        return ErrorKind.RETRYABLE
    if isinstance(error, (ValueError, KeyError, TypeError)):
        return ErrorKind.VALIDATION
    return ErrorKind.FATAL
