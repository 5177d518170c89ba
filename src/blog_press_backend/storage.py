"""
Durable storage for processed images.

Images live in a flat namespace keyed by filename. Two backends exist:

- ``LocalImageStorage`` writes into a directory served under a static
  URL prefix (``/uploads`` by default)
- ``S3ImageStorage`` writes objects into a bucket and builds public URLs
  from a configured base URL

Both backends guarantee that a failed write leaves nothing under the final
name. Filenames are allocated by ``allocate_filename`` and never reused.
"""

from __future__ import annotations

import logging
import os
import random
import time
from pathlib import Path
from typing import Callable, Optional
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from omegaconf import DictConfig

from .exceptions import StorageWriteFailed
from .imaging import OUTPUT_EXTENSION, OUTPUT_MEDIA_TYPE
from .utils import ensure_directory, sanitize_stem, split_extension

logger = logging.getLogger(__name__)

# Upper bound (inclusive) of the random component of stored filenames
RANDOM_SUFFIX_MAX = 10**12


def allocate_filename(
    original_filename: str,
    now: Optional[Callable[[], float]] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Build ``<timestampMillis>-<random>-<base>.webp`` for a new upload.

    Uniqueness is probabilistic: a millisecond timestamp combined with a
    random draw from ``[0, RANDOM_SUFFIX_MAX]``. Storage is not consulted.

    Args:
        original_filename: Name supplied by the client, possibly with a path
        now: Clock returning epoch seconds (defaults to ``time.time``)
        rng: Random source (defaults to the module-level generator)

    Example:
        >>> allocate_filename("../Summer Trip.JPG")
        "1760607000123-482915003311-Summer-Trip.webp"
    """
    timestamp_ms = int((now or time.time)() * 1000)
    suffix = (rng or random).randint(0, RANDOM_SUFFIX_MAX)
    stem, _ = split_extension(original_filename)
    base_name = sanitize_stem(stem, fallback="image")
    return f"{timestamp_ms}-{suffix}-{base_name}.{OUTPUT_EXTENSION}"


def _check_flat_name(filename: str) -> None:
    if not filename or "/" in filename or "\\" in filename or filename.startswith("."):
        raise ValueError(f"Invalid storage filename: {filename!r}")


class LocalImageStorage:
    """
    Filesystem-backed image storage.

    Writes go to a hidden temporary file in the same directory and are
    moved into place with ``os.replace``, so readers never observe a
    partially written image under its final name.
    """

    def __init__(self, root: Path, url_prefix: str = "/uploads"):
        self.root = ensure_directory(Path(root))
        self.url_prefix = url_prefix.rstrip("/")

    def path_for(self, filename: str) -> Path:
        _check_flat_name(filename)
        return self.root / filename

    def write(self, filename: str, data: bytes) -> None:
        destination = self.path_for(filename)
        tmp_path = self.root / f".{filename}.{uuid4().hex}.tmp"
        try:
            with tmp_path.open("wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, destination)
        except OSError as exc:
            logger.exception(f"Atomic write failed for {destination}")
            tmp_path.unlink(missing_ok=True)
            raise StorageWriteFailed(f"Could not write {filename}: {exc}") from exc
        logger.debug(f"Stored {filename} ({len(data)} bytes)")

    def size(self, filename: str) -> int:
        return self.path_for(filename).stat().st_size

    def exists(self, filename: str) -> bool:
        return self.path_for(filename).is_file()

    def delete(self, filename: str) -> bool:
        path = self.path_for(filename)
        if not path.exists():
            return False
        path.unlink()
        return True

    def url_for(self, filename: str) -> str:
        return f"{self.url_prefix}/{filename}"


class S3ImageStorage:
    """
    S3-backed image storage.

    A single ``put_object`` call either creates the object in full or not
    at all, which gives the same write-or-nothing guarantee as the local
    backend's rename.
    """

    def __init__(
        self,
        bucket: str,
        client=None,
        public_url: str = "",
        key_prefix: str = "",
    ):
        if not bucket:
            raise ValueError("S3 storage requires a bucket name")
        self.bucket = bucket
        self.client = client if client is not None else boto3.client("s3")
        self.public_url = (public_url or f"https://{bucket}.s3.amazonaws.com").rstrip("/")
        self.key_prefix = key_prefix.strip("/")

    def _key(self, filename: str) -> str:
        _check_flat_name(filename)
        return f"{self.key_prefix}/{filename}" if self.key_prefix else filename

    def write(self, filename: str, data: bytes) -> None:
        key = self._key(filename)
        try:
            logger.info(f"Uploading {filename} to s3://{self.bucket}/{key}")
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=OUTPUT_MEDIA_TYPE,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error(f"S3 upload failed: {exc}")
            raise StorageWriteFailed(f"Could not upload {filename}: {exc}") from exc

    def size(self, filename: str) -> int:
        response = self.client.head_object(Bucket=self.bucket, Key=self._key(filename))
        return int(response["ContentLength"])

    def exists(self, filename: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._key(filename))
        except ClientError:
            return False
        return True

    def delete(self, filename: str) -> bool:
        self.client.delete_object(Bucket=self.bucket, Key=self._key(filename))
        return True

    def url_for(self, filename: str) -> str:
        return f"{self.public_url}/{self._key(filename)}"


def build_storage(config: DictConfig):
    """Create the storage backend named by ``config.storage.backend``."""
    backend = str(config.storage.backend).lower()
    if backend == "local":
        return LocalImageStorage(Path(config.storage.upload_dir), url_prefix=config.storage.url_prefix)
    if backend == "s3":
        return S3ImageStorage(
            bucket=config.storage.s3_bucket,
            public_url=config.storage.s3_public_url,
            key_prefix=config.storage.s3_key_prefix,
        )
    raise ValueError(f"Unknown storage backend: {backend}")
