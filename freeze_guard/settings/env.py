from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from freeze_guard.core.runtime_context import RuntimeContext
from tools.fs._path import under_root
from tools.proc.run import CommandResult, Runner, run_command
from tools.systemd.systemctl import Systemctl


@dataclass(frozen=True)
class SystemEnv:
    """
    The OS collaborators every probe/apply closes over.

    `offline` disables live side effects that only make sense on the running
    host (dconf compile, grub regeneration, udev reload); file writes and
    unit-file operations still happen under `root`.
    """

    root: Path
    systemctl: Any
    runner: Runner = run_command
    which: Callable[[str], Optional[str]] = shutil.which
    command_timeout: float = 20.0
    offline: bool = False

    def path(self, p: str) -> Path:
        return under_root(self.root, p)

    def run(self, argv: Sequence[str], *, timeout: Optional[float] = None) -> CommandResult:
        return self.runner(list(argv), timeout=timeout if timeout is not None else self.command_timeout)


def system_env(ctx: RuntimeContext) -> SystemEnv:
    systemctl = Systemctl(run_command, timeout=ctx.command_timeout, root=ctx.root)
    return SystemEnv(
        root=ctx.root,
        systemctl=systemctl,
        runner=run_command,
        command_timeout=ctx.command_timeout,
        offline=ctx.offline,
    )
