"""
Pytest configuration and fixtures for Blog Press Backend tests.
"""

import os
import shutil
import struct
import tempfile
import zlib
from io import BytesIO
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image

# Set test environment variables before importing the app
_DATA_DIR = tempfile.mkdtemp(prefix="blog_test_data_")
os.environ["BLOG_DB_PATH"] = str(Path(_DATA_DIR) / "blog.db")
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="blog_test_uploads_")
os.environ["STORAGE_BACKEND"] = "local"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "test-password-123"

from blog_press_backend.ingestion import ImageIngestor
from blog_press_backend.main import app
from blog_press_backend.storage import LocalImageStorage


@pytest.fixture(scope="session", autouse=True)
def test_dirs():
    """Create and cleanup test directories."""
    yield {
        "data": _DATA_DIR,
        "upload": os.environ["UPLOAD_DIR"],
    }

    # Cleanup after all tests
    shutil.rmtree(_DATA_DIR, ignore_errors=True)
    shutil.rmtree(os.environ["UPLOAD_DIR"], ignore_errors=True)


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def admin_credentials():
    return {"username": "admin", "password": "test-password-123"}


@pytest.fixture
def auth_client(admin_credentials):
    """A test client holding a valid admin session cookie."""
    test_client = TestClient(app)
    response = test_client.post("/api/admin/login", json=admin_credentials)
    assert response.status_code == 200
    return test_client


@pytest.fixture
def make_image():
    """Build encoded image bytes of a given size and format."""

    def _make(width: int, height: int, fmt: str = "PNG", mode: str = "RGB", color=(200, 80, 40)) -> bytes:
        if mode == "RGBA" and len(color) == 3:
            color = (*color, 128)
        img = Image.new(mode, (width, height), color)
        buffer = BytesIO()
        img.save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def make_png_header():
    """Build a small PNG whose IHDR claims arbitrary dimensions."""

    def _chunk(kind: bytes, body: bytes) -> bytes:
        return struct.pack(">I", len(body)) + kind + body + struct.pack(">I", zlib.crc32(kind + body))

    def _make(width: int, height: int) -> bytes:
        ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
        return (
            b"\x89PNG\r\n\x1a\n"
            + _chunk(b"IHDR", ihdr)
            + _chunk(b"IDAT", zlib.compress(b"\x00" * 1024))
            + _chunk(b"IEND", b"")
        )

    return _make


@pytest.fixture
def storage(tmp_path):
    return LocalImageStorage(tmp_path / "uploads")


@pytest.fixture
def ingestor(storage):
    return ImageIngestor(storage)
