from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class RuntimeContext:
    """
    Per-invocation configuration that influences policy and execution.

    Hard rules:
    - no setting is touched before policy allows the command.
    - a non-"/" root means every managed path is re-anchored below it.
    """

    run_id: str
    root: Path = Path("/")
    trace_path: Path = Path("/var/log/freeze-guard/trace.jsonl")
    lock_path: Path = Path("/run/freeze-guard.lock")
    lock_timeout: float = 30.0
    command_timeout: float = 20.0
    interactive: bool = False
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def offline(self) -> bool:
        return self.root != Path("/")
