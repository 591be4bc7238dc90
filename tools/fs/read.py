from __future__ import annotations

from pathlib import Path


def read_text(path: Path) -> str | None:
    """
    Read a text file (read-only).
    Returns None when the file does not exist; other OS errors propagate.
    """
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def read_attr(path: Path) -> str | None:
    """Read a single-value sysfs-style attribute, stripped."""
    text = read_text(path)
    if text is None:
        return None
    return text.strip()
