"""
Tests for filename allocation and the storage backends.
"""

import random
import re
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from blog_press_backend import storage as storage_module
from blog_press_backend.configuration import make_runtime_config
from blog_press_backend.exceptions import StorageWriteFailed
from blog_press_backend.storage import (
    RANDOM_SUFFIX_MAX,
    LocalImageStorage,
    S3ImageStorage,
    allocate_filename,
    build_storage,
)
from blog_press_backend.utils import generate_slug, sanitize_stem, split_extension

FILENAME_PATTERN = re.compile(r"^(\d+)-(\d+)-([A-Za-z0-9._-]+)\.webp$")


class TestFilenameAllocator:
    """Tests for allocate_filename."""

    def test_format(self):
        name = allocate_filename("holiday.jpg", now=lambda: 1700000000.123, rng=random.Random(7))
        match = FILENAME_PATTERN.match(name)
        assert match is not None
        assert match.group(1) == "1700000000123"
        assert 0 <= int(match.group(2)) <= RANDOM_SUFFIX_MAX
        assert match.group(3) == "holiday"

    @pytest.mark.parametrize(
        "original, base",
        [
            ("photo.PNG", "photo"),
            ("archive.tar.gz", "archive.tar"),
            ("../../etc/passwd", "passwd"),
            ("C:\\Users\\me\\My Picture.jpeg", "My-Picture"),
            (".hidden.png", "hidden"),
            ("", "image"),
            ("???.gif", "image"),
        ],
    )
    def test_base_name_is_sanitized(self, original, base):
        name = allocate_filename(original, now=lambda: 1.0, rng=random.Random(1))
        assert name.endswith(f"-{base}.webp")
        assert "/" not in name and "\\" not in name

    def test_extension_is_fixed(self):
        for original in ("a.gif", "b.bmp", "c.webp", "d"):
            assert allocate_filename(original).endswith(".webp")

    def test_ten_thousand_allocations_are_distinct(self):
        names = {allocate_filename("same-source.jpg") for _ in range(10_000)}
        assert len(names) == 10_000


class TestLocalImageStorage:
    """Tests for the filesystem backend."""

    def test_write_size_and_url(self, storage):
        storage.write("1-2-photo.webp", b"RIFF1234WEBPdata")
        assert storage.exists("1-2-photo.webp")
        assert storage.size("1-2-photo.webp") == 16
        assert storage.url_for("1-2-photo.webp") == "/uploads/1-2-photo.webp"

    def test_no_temporary_files_remain(self, storage):
        storage.write("1-2-photo.webp", b"data")
        assert [p.name for p in storage.root.iterdir()] == ["1-2-photo.webp"]

    def test_failed_rename_leaves_nothing(self, storage, monkeypatch):
        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(storage_module.os, "replace", failing_replace)
        with pytest.raises(StorageWriteFailed):
            storage.write("1-2-photo.webp", b"data")
        assert list(storage.root.iterdir()) == []

    @pytest.mark.parametrize("name", ["../escape.webp", "nested/file.webp", ".hidden.webp", ""])
    def test_rejects_non_flat_names(self, storage, name):
        with pytest.raises(ValueError):
            storage.write(name, b"data")

    def test_delete(self, storage):
        storage.write("1-2-photo.webp", b"data")
        assert storage.delete("1-2-photo.webp") is True
        assert storage.delete("1-2-photo.webp") is False


class TestS3ImageStorage:
    """Tests for the S3 backend with a mocked boto3 client."""

    def test_write_puts_object_with_content_type(self):
        client = MagicMock()
        backend = S3ImageStorage("blog-bucket", client=client, key_prefix="uploads")
        backend.write("1-2-photo.webp", b"data")
        client.put_object.assert_called_once_with(
            Bucket="blog-bucket",
            Key="uploads/1-2-photo.webp",
            Body=b"data",
            ContentType="image/webp",
        )

    def test_size_reads_content_length(self):
        client = MagicMock()
        client.head_object.return_value = {"ContentLength": 4321}
        backend = S3ImageStorage("blog-bucket", client=client)
        assert backend.size("1-2-photo.webp") == 4321
        client.head_object.assert_called_once_with(Bucket="blog-bucket", Key="1-2-photo.webp")

    def test_client_error_becomes_storage_write_failed(self):
        client = MagicMock()
        client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )
        backend = S3ImageStorage("blog-bucket", client=client)
        with pytest.raises(StorageWriteFailed):
            backend.write("1-2-photo.webp", b"data")

    def test_url_uses_public_base(self):
        backend = S3ImageStorage("blog-bucket", client=MagicMock(), public_url="https://cdn.example.com/", key_prefix="img")
        assert backend.url_for("1-2-photo.webp") == "https://cdn.example.com/img/1-2-photo.webp"

    def test_default_url_points_at_bucket(self):
        backend = S3ImageStorage("blog-bucket", client=MagicMock())
        assert backend.url_for("a.webp") == "https://blog-bucket.s3.amazonaws.com/a.webp"


class TestBuildStorage:
    """Tests for selecting a backend from configuration."""

    def test_local_backend(self, tmp_path):
        config = make_runtime_config({"storage": {"backend": "local", "upload_dir": str(tmp_path / "up")}})
        backend = build_storage(config)
        assert isinstance(backend, LocalImageStorage)
        assert backend.root == tmp_path / "up"

    def test_s3_backend(self, monkeypatch):
        monkeypatch.setattr(storage_module.boto3, "client", lambda service: MagicMock(name=service))
        config = make_runtime_config({"storage": {"backend": "s3", "s3_bucket": "blog-bucket"}})
        backend = build_storage(config)
        assert isinstance(backend, S3ImageStorage)
        assert backend.bucket == "blog-bucket"

    def test_unknown_backend(self):
        config = make_runtime_config({"storage": {"backend": "ftp"}})
        with pytest.raises(ValueError):
            build_storage(config)


class TestStringUtils:
    """Tests for slug and filename helpers."""

    def test_generate_slug(self):
        assert generate_slug("Hello, World!") == "hello-world"
        assert generate_slug("  Spaces   and__underscores -- dashes ") == "spaces-and-underscores-dashes"
        assert generate_slug("---") == ""

    def test_sanitize_stem_preserves_case(self):
        assert sanitize_stem("My Photo (1)", "image") == "My-Photo-1"

    def test_split_extension_handles_windows_paths(self):
        assert split_extension("C:\\tmp\\cat.JPG") == ("cat", ".JPG")
