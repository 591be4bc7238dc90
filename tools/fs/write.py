from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

from .read import read_text


def write_text(path: Path, content: str, *, mode: int = 0o644) -> bool:
    """
    Write a file atomically (temp file in the same directory + rename).
    Concurrent writers never leave a torn file; the last rename wins.

    Returns True when the on-disk content changed.
    """
    if read_text(path) == content:
        return False

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp)
        raise
    return True


def write_attr(path: Path, value: str) -> None:
    """
    Write a kernel attribute (sysfs/module parameter) in place.
    Attributes cannot be renamed over, so this is a plain write.
    """
    if not path.exists():
        raise FileNotFoundError(str(path))
    with path.open("w", encoding="utf-8") as f:
        f.write(value)
