from __future__ import annotations

from pathlib import Path


def under_root(root: Path, p: str | Path) -> Path:
    # Absolute system paths are re-anchored below root; "/" leaves them untouched.
    path = Path(p)
    if root == Path("/"):
        return path
    if path.is_absolute():
        return root / path.relative_to("/")
    return root / path
