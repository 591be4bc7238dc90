from __future__ import annotations

from pathlib import Path


def _package_dir(package_name: str) -> Path:
    """
    Return the on-disk directory for an imported package.
    Assumes a filesystem-backed install (wheel or editable), not zipimport.
    """
    module = __import__(package_name, fromlist=["__file__"])
    p = getattr(module, "__file__", None)
    if not isinstance(p, str) or not p:
        raise RuntimeError(f"Cannot resolve package directory for: {package_name}")
    return Path(p).resolve().parent


def contracts_dir() -> Path:
    return _package_dir("freeze_guard") / "contracts"


def schemas_dir() -> Path:
    return contracts_dir() / "schemas"


def examples_dir() -> Path:
    return contracts_dir() / "examples"
