"""
Domain exceptions for the blog backend.

Every failure of the image ingestion pipeline is an ``IngestionError``
subclass carrying a machine-readable ``kind`` and a human-readable
``message``. The HTTP layer maps each subclass to a status code.
"""

from __future__ import annotations


class IngestionError(Exception):
    """Base class for terminal failures of a single image ingestion."""

    kind = "ingestion_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r}, message={self.message!r})"


class NotAnImage(IngestionError):
    kind = "not_an_image"
    status_code = 415


class PayloadTooLarge(IngestionError):
    kind = "payload_too_large"
    status_code = 413


class UnsupportedFormat(IngestionError):
    kind = "unsupported_format"
    status_code = 415


class CorruptImage(IngestionError):
    kind = "corrupt_image"
    status_code = 400


class InvalidDimensions(IngestionError):
    kind = "invalid_dimensions"
    status_code = 400


class EncodingFailed(IngestionError):
    kind = "encoding_failed"
    status_code = 500


class StorageWriteFailed(IngestionError):
    kind = "storage_write_failed"
    status_code = 500


class AuthenticationError(Exception):
    """Raised when credentials or a session token are rejected."""


class DuplicateSlugError(Exception):
    """Raised when a post would collide with an existing slug."""
