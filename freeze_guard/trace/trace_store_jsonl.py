from __future__ import annotations

import json
from pathlib import Path
from typing import Any


class TraceStoreJSONL:
    """
    Append-only JSONL event log. One event per line; each line is written
    with a single append so concurrent runs interleave whole events.
    """

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def append(self, event: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(event, ensure_ascii=False, sort_keys=True) + "\n"
        with self._path.open("a", encoding="utf-8") as f:
            f.write(line)
