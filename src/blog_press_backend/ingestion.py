"""
Image ingestion: upload bytes in, stored WebP image and report out.

``ImageIngestor`` is the only part of the image pipeline the HTTP layer
talks to. One call to ``ingest`` runs synchronously to completion and
either returns an ``IngestionResult`` or raises an ``IngestionError``
subclass. Nothing is left in storage after a failed call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from .exceptions import IngestionError, NotAnImage, PayloadTooLarge, StorageWriteFailed
from .imaging import (
    MAX_HEIGHT,
    MAX_WIDTH,
    compute_resize_target,
    decode_image,
    encode_image,
    probe_image,
)
from .storage import allocate_filename

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 50 * 1024 * 1024


@dataclass(frozen=True)
class UploadRequest:
    raw_bytes: bytes
    original_filename: str
    declared_media_type: str


@dataclass(frozen=True)
class IngestionResult:
    stored_filename: str
    original_filename: str
    byte_size: int
    width: int
    height: int

    @property
    def dimensions(self) -> str:
        return f"{self.width}x{self.height}"


class ImageIngestor:
    """
    Validate, normalize and persist uploaded images.

    The storage handle is injected and shared by every request; each
    ``ingest`` call owns its buffers and writes under a freshly allocated
    name, so concurrent calls never touch the same key.

    Args:
        storage: Backend with ``write``, ``size`` and ``delete``
        max_upload_bytes: Largest accepted payload
        report_clamped_dimensions: Report ``min(source, max)`` per axis
            instead of the true dimensions of the stored image
        filename_allocator: Callable mapping the original name to a stored name
    """

    def __init__(
        self,
        storage,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        report_clamped_dimensions: bool = False,
        filename_allocator: Callable[[str], str] = allocate_filename,
    ):
        self.storage = storage
        self.max_upload_bytes = max_upload_bytes
        self.report_clamped_dimensions = report_clamped_dimensions
        self.filename_allocator = filename_allocator

    def ingest(self, request: UploadRequest) -> IngestionResult:
        media_type = (request.declared_media_type or "").strip().lower()
        if not media_type.startswith("image/"):
            raise NotAnImage("Only image files are allowed!")

        if len(request.raw_bytes) > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes // (1024 * 1024)
            raise PayloadTooLarge(f"File too large. Maximum upload size is {limit_mb}MB")

        metadata = probe_image(request.raw_bytes)
        target = compute_resize_target(metadata.width, metadata.height, MAX_WIDTH, MAX_HEIGHT)

        with decode_image(request.raw_bytes) as image:
            output = encode_image(image, target)

        stored_filename = self.filename_allocator(request.original_filename)
        try:
            self.storage.write(stored_filename, output)
        except IngestionError:
            raise
        except Exception as exc:
            raise StorageWriteFailed(f"Could not store image {stored_filename}: {exc}") from exc

        try:
            byte_size = self.storage.size(stored_filename)
        except Exception as exc:
            self._discard(stored_filename)
            raise StorageWriteFailed(f"Could not measure stored image {stored_filename}: {exc}") from exc

        if self.report_clamped_dimensions:
            width, height = min(metadata.width, MAX_WIDTH), min(metadata.height, MAX_HEIGHT)
        else:
            width, height = target.width, target.height

        logger.info(f"Image processed: {request.original_filename} -> {stored_filename}")
        logger.info(
            f"Original: {metadata.width}x{metadata.height} {metadata.format}, "
            f"final: {target.width}x{target.height}, size: {round(byte_size / 1024)}KB"
        )

        return IngestionResult(
            stored_filename=stored_filename,
            original_filename=request.original_filename,
            byte_size=byte_size,
            width=width,
            height=height,
        )

    def _discard(self, filename: str) -> None:
        try:
            self.storage.delete(filename)
        except Exception:  # noqa: BLE001
            logger.exception(f"Failed to remove {filename} after aborted ingestion")


__all__ = [
    "MAX_UPLOAD_BYTES",
    "ImageIngestor",
    "IngestionError",
    "IngestionResult",
    "UploadRequest",
]
