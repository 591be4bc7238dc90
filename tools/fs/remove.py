from __future__ import annotations

from pathlib import Path

from .read import read_text
from .write import write_text


def remove_file(path: Path) -> bool:
    """Remove a file if present. Returns True when something was removed."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def strip_block(path: Path, begin: str, end: str, *, legacy_marker: str | None = None) -> bool:
    """
    Remove a marked block (begin..end lines inclusive) from a text file.

    A begin marker with no matching end marker is dropped on its own; the
    lines after it are kept.
    legacy_marker:
      an older single-line marker whose block ran to end of file; everything
      from that line on is dropped.
    Returns True when the file changed.
    """
    text = read_text(path)
    if text is None:
        return False

    lines = text.splitlines(keepends=True)
    out = []
    held = None
    for line in lines:
        s = line.rstrip("\n")
        if legacy_marker is not None and s == legacy_marker:
            break
        if s == begin:
            if held is not None:
                out.extend(held)
            held = []
            continue
        if s == end and held is not None:
            held = None
            continue
        if held is not None:
            held.append(line)
        else:
            out.append(line)
    if held is not None:
        out.extend(held)

    new_text = "".join(out).rstrip("\n") + "\n" if out else ""
    if new_text == text:
        return False
    return write_text(path, new_text)
