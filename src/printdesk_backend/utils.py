"""
Utility functions for identifiers, timestamps and filename sanitization.

This module provides helper functions for:
- Generating customer-facing token numbers
- Producing timezone-aware UTC timestamps
- Sanitizing uploaded filenames for use in storage keys
- Ensuring directory creation for the local database
"""

from __future__ import annotations

import random
import re
import time
from datetime import datetime, timezone
from pathlib import Path

# Pattern to match characters that are not safe for storage keys
# Allows: alphanumeric characters, dots, underscores, and hyphens
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_token_number() -> str:
    """
    Generate a human-readable token number for a print job.

    The format is ``PJ-<epoch millis>-<0..999>``. Uniqueness is best-effort:
    no check is made against existing tokens.

    Example:
        >>> generate_token_number()
        "PJ-1760882400123-42"
    """
    return f"PJ-{int(time.time() * 1000)}-{random.randint(0, 999)}"


def sanitize_filename(filename: str, fallback: str = "document") -> str:
    """
    Generate a storage-safe filename from an uploaded file's original name.

    Args:
        filename: The original filename (may include a client-side path)
        fallback: Stem to use if sanitization leaves nothing behind

    Returns:
        A filename containing only safe characters, keeping the extension

    Example:
        >>> sanitize_filename("My Thesis (final).pdf")
        "My-Thesis-final.pdf"
        >>> sanitize_filename("@#$.png")
        "document.png"
    """
    name = Path(filename.replace("\\", "/")).name
    stem = Path(name).stem
    suffix = Path(name).suffix.lower()
    safe_stem = SANITIZE_PATTERN.sub("-", stem.strip()).strip("-_.")
    safe_suffix = SANITIZE_PATTERN.sub("", suffix)
    return f"{safe_stem or fallback}{safe_suffix}"


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path
