"""
Module: errors.py
Description: Exception hierarchy for the large message client.

Every error raised by the client derives from LargeMessageError so that
callers can catch the whole family at once. Errors that describe bad
input (invalid properties, malformed pointers, unusable arguments) also
derive from ValueError. Subclasses of NonRetryableError are never retried.
"""

from typing import Optional


class LargeMessageError(Exception):
    """Base class for all large message client errors."""


class NonRetryableError(LargeMessageError):
    """Marker base for errors that retrying cannot fix."""


class PropertyValidationError(NonRetryableError, ValueError):
    """Application properties are malformed, over limit, or use a reserved key."""


class InvalidPointerError(NonRetryableError, ValueError):
    """A message body flagged as a blob pointer could not be decoded."""


class PayloadNotFoundError(LargeMessageError):
    """The blob referenced by a pointer does not exist."""

    def __init__(self, container_name: str, blob_name: str):
        self.container_name = container_name
        self.blob_name = blob_name
        super().__init__(
            f"Payload not found in blob store: {container_name}/{blob_name}"
        )


class PayloadStoreError(LargeMessageError):
    """A blob store operation failed."""


class QueueOperationError(LargeMessageError):
    """A queue transport operation failed."""


class UnsupportedOperationError(QueueOperationError, NonRetryableError):
    """The transport cannot perform the requested operation."""


class InvalidRequestError(NonRetryableError, ValueError):
    """An operation was called with arguments it can never accept."""


class RetryExhaustedError(LargeMessageError):
    """
    Raised when an operation still fails after every allowed attempt.

    Attributes:
        attempts: Number of attempts performed
        last_error: The failure raised by the final attempt (also __cause__)
    """

    def __init__(self, attempts: int, last_error: Optional[BaseException]):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Operation failed after {attempts} attempts: {last_error}")
