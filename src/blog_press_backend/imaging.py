"""
Image probing, resize policy and WebP re-encoding.

This module holds the pure image-handling steps of the upload pipeline:

- ``probe_image`` sniffs magic bytes and reads the header for dimensions
- ``compute_resize_target`` decides the output dimensions
- ``decode_image`` and ``encode_image`` turn raw bytes into WebP output

None of these functions touch storage; orchestration lives in
``ingestion.ImageIngestor``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .exceptions import CorruptImage, EncodingFailed, InvalidDimensions, UnsupportedFormat

logger = logging.getLogger(__name__)

MAX_WIDTH = 1920
MAX_HEIGHT = 1080
OUTPUT_FORMAT = "WEBP"
OUTPUT_EXTENSION = "webp"
OUTPUT_MEDIA_TYPE = "image/webp"
OUTPUT_QUALITY = 85
# libwebp "method": 0 is fastest, 6 compresses best
OUTPUT_EFFORT = 6

# Decode ceiling on width * height; any aspect ratio is accepted below it.
# Pillow's own MAX_IMAGE_PIXELS guard is left at its default.
MAX_SOURCE_PIXELS = 100_000_000

SUPPORTED_FORMATS = ("JPEG", "PNG", "GIF", "WEBP", "BMP", "TIFF")

# Pillow plugins allowed to open each sniffed format
_PILLOW_FORMATS = {
    "JPEG": ("JPEG", "MPO"),
    "PNG": ("PNG",),
    "GIF": ("GIF",),
    "WEBP": ("WEBP",),
    "BMP": ("BMP",),
    "TIFF": ("TIFF",),
}


@dataclass(frozen=True)
class ImageMetadata:
    width: int
    height: int
    format: str


@dataclass(frozen=True)
class ResizeTarget:
    width: int
    height: int
    was_resized: bool


def sniff_format(raw_bytes: bytes) -> Optional[str]:
    """Return the source format named by the leading magic bytes, if supported."""
    head = raw_bytes[:16]
    if head.startswith(b"\xff\xd8\xff"):
        return "JPEG"
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return "PNG"
    if head.startswith((b"GIF87a", b"GIF89a")):
        return "GIF"
    if head.startswith(b"RIFF") and head[8:12] == b"WEBP":
        return "WEBP"
    if head.startswith(b"BM"):
        return "BMP"
    if head.startswith((b"II*\x00", b"MM\x00*")):
        return "TIFF"
    return None


def probe_image(raw_bytes: bytes) -> ImageMetadata:
    """
    Read format and intrinsic dimensions without decoding pixel data.

    Raises:
        UnsupportedFormat: The payload does not start with a known raster signature
        CorruptImage: The signature matches but the header cannot be read, or
            the header claims more than ``MAX_SOURCE_PIXELS`` pixels
    """
    sniffed = sniff_format(raw_bytes)
    if sniffed is None:
        raise UnsupportedFormat("Payload is not a supported raster image")

    # Pillow may name a variant (e.g. MPO for camera JPEGs); the signature decides
    try:
        with Image.open(BytesIO(raw_bytes), formats=_PILLOW_FORMATS[sniffed]) as img:
            width, height = img.size
    except Image.DecompressionBombError as exc:
        raise CorruptImage(f"Image dimensions too large: {exc}") from exc
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise CorruptImage(f"Could not read {sniffed} header: {exc}") from exc

    if width <= 0 or height <= 0:
        raise CorruptImage(f"Image reports invalid dimensions {width}x{height}")

    # Checked from the header alone, before any pixel buffer is allocated
    if width * height > MAX_SOURCE_PIXELS:
        raise CorruptImage(
            f"Image has {width * height:,} pixels, exceeds limit of {MAX_SOURCE_PIXELS:,}"
        )

    return ImageMetadata(width=width, height=height, format=sniffed)


def compute_resize_target(
    source_width: int,
    source_height: int,
    max_width: int = MAX_WIDTH,
    max_height: int = MAX_HEIGHT,
) -> ResizeTarget:
    """
    Fit the source inside ``max_width`` x ``max_height`` without upscaling.

    The scale factor is the smaller of the two axis ratios, so the aspect
    ratio is preserved and the image is never cropped.

    Example:
        >>> compute_resize_target(4000, 2000)
        ResizeTarget(width=1920, height=960, was_resized=True)
        >>> compute_resize_target(800, 600)
        ResizeTarget(width=800, height=600, was_resized=False)
    """
    if min(source_width, source_height, max_width, max_height) <= 0:
        raise InvalidDimensions(
            f"Dimensions must be positive: source={source_width}x{source_height} "
            f"max={max_width}x{max_height}"
        )

    if source_width <= max_width and source_height <= max_height:
        return ResizeTarget(width=source_width, height=source_height, was_resized=False)

    scale = min(max_width / source_width, max_height / source_height)
    return ResizeTarget(
        width=max(1, round(source_width * scale)),
        height=max(1, round(source_height * scale)),
        was_resized=True,
    )


def decode_image(raw_bytes: bytes) -> Image.Image:
    """Fully decode ``raw_bytes`` into a Pillow image."""
    try:
        img = Image.open(BytesIO(raw_bytes))
        img.load()
    except (Image.DecompressionBombError, MemoryError) as exc:
        raise CorruptImage(f"Image too large to decode: {exc!r}") from exc
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise CorruptImage(f"Could not decode image: {exc}") from exc
    return img


def _webp_compatible(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "RGBA"):
        return img
    if img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info):
        return img.convert("RGBA")
    return img.convert("RGB")


def encode_image(img: Image.Image, target: ResizeTarget) -> bytes:
    """
    Resize ``img`` to ``target`` when required and encode it as WebP.

    Raises:
        EncodingFailed: Pillow rejected the pixel buffer at any step
    """
    try:
        work = _webp_compatible(img)
        if target.was_resized:
            work = work.resize((target.width, target.height), Image.Resampling.LANCZOS)
        buffer = BytesIO()
        work.save(buffer, format=OUTPUT_FORMAT, quality=OUTPUT_QUALITY, method=OUTPUT_EFFORT)
    except (OSError, ValueError, KeyError, MemoryError) as exc:
        raise EncodingFailed(f"WebP encoding failed: {exc}") from exc

    data = buffer.getvalue()
    if not data:
        raise EncodingFailed("WebP encoder produced no output")
    logger.debug(f"Encoded {target.width}x{target.height} WebP ({len(data)} bytes)")
    return data
