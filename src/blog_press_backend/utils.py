"""
Utility functions for file system operations and string sanitization.

This module provides helper functions for:
- Sanitizing user-provided filenames for a flat public namespace
- Ensuring directory creation with proper error handling
- Splitting filenames into stem and extension
- Deriving URL slugs from post titles
"""

from __future__ import annotations

import re
from pathlib import Path

# Pattern to match characters that are not safe for public filenames
# Allows: alphanumeric characters, dots, underscores, and hyphens
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")

_SLUG_STRIP_PATTERN = re.compile(r"[^\w\s-]")
_SLUG_SEPARATOR_PATTERN = re.compile(r"[\s_-]+")


def sanitize_stem(stem: str, fallback: str) -> str:
    """
    Make a filename stem safe for a flat, publicly served namespace.

    Unlike slugs, case is preserved so the stored name still resembles
    the uploaded one.

    Args:
        stem: The filename stem (no directory, no extension)
        fallback: Value returned if nothing safe remains

    Returns:
        The sanitized stem or the fallback value

    Example:
        >>> sanitize_stem("My Holiday Photo", "image")
        "My-Holiday-Photo"
        >>> sanitize_stem("...", "image")
        "image"
    """
    cleaned = SANITIZE_PATTERN.sub("-", stem.strip())
    # A leading dot would hide the file; edge separators are noise
    cleaned = cleaned.strip("-_.")
    return cleaned or fallback


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    This is a safe idempotent operation that won't fail if the directory
    already exists.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining

    Raises:
        OSError: If directory creation fails due to permissions or other I/O errors
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def split_extension(filename: str) -> tuple[str, str]:
    """
    Split a filename into stem and extension components.

    Both POSIX and Windows separators are treated as directory boundaries,
    since browsers on either platform may send a full client-side path.

    Example:
        >>> split_extension("photo.JPG")
        ("photo", ".JPG")
        >>> split_extension("C:\\\\Users\\\\me\\\\archive.tar.gz")
        ("archive.tar", ".gz")
    """
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    path = Path(name)
    return path.stem, path.suffix


def generate_slug(title: str) -> str:
    """
    Derive a URL slug from a post title.

    Example:
        >>> generate_slug("Hello, World! It's  a_new -- day")
        "hello-world-its-a-new-day"
    """
    slug = _SLUG_STRIP_PATTERN.sub("", title.lower())
    slug = _SLUG_SEPARATOR_PATTERN.sub("-", slug)
    return slug.strip("-")
