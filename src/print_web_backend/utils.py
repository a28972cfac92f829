"""
Filesystem and naming helpers shared by the upload and artifact stores.

This module provides helper functions for:
- Creating working directories on demand
- Producing filesystem-safe name fragments
- Millisecond timestamps used in generated filenames
"""

from __future__ import annotations

import re
import time
from pathlib import Path

# Characters kept as-is in generated filename fragments
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")


def sanitize_label(label: str, fallback: str) -> str:
    """
    Generate a filesystem-safe name fragment from arbitrary input.

    Args:
        label: The original string to sanitize
        fallback: Value returned when nothing usable remains

    Returns:
        The sanitized fragment, or the fallback value

    Example:
        >>> sanitize_label("Quarterly Report (final)", "document")
        "Quarterly-Report-final"
        >>> sanitize_label("@#$", "document")
        "document"
    """
    cleaned = SANITIZE_PATTERN.sub("-", label.strip())
    cleaned = cleaned.strip("-_.")
    return cleaned or fallback


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

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

    Example:
        >>> split_extension("document.pdf")
        ("document", ".pdf")
        >>> split_extension("/path/to/file.tar.gz")
        ("file.tar", ".gz")
    """
    path = Path(filename)
    return path.stem, path.suffix


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000
