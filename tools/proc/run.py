from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def error_text(self) -> str:
        msg = self.stderr.strip() or self.stdout.strip()
        return msg or "exit status {}".format(self.returncode)


Runner = Callable[..., CommandResult]


def run_command(
    argv: Sequence[str],
    *,
    timeout: float = 20.0,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """
    Run an external command without a shell.

    Raises:
    - FileNotFoundError when the executable is not installed
    - TimeoutError when the command exceeds `timeout` seconds
    A non-zero exit status is returned, not raised.
    """
    try:
        cp = subprocess.run(
            list(argv),
            capture_output=True,
            text=True,
            timeout=timeout,
            env=dict(env) if env is not None else None,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise TimeoutError("{} timed out after {}s".format(argv[0], timeout)) from e
    return CommandResult(argv=tuple(argv), returncode=cp.returncode, stdout=cp.stdout or "", stderr=cp.stderr or "")
