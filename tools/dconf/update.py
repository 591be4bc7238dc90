from __future__ import annotations

from tools.proc.run import Runner, run_command


def run(runner: Runner = run_command, *, timeout: float = 20.0) -> None:
    """
    Recompile the system dconf databases from /etc/dconf/db/*.d keyfiles.
    Raises RuntimeError when dconf reports a failure.
    """
    res = runner(["dconf", "update"], timeout=timeout)
    if not res.ok:
        raise RuntimeError("dconf update failed: {}".format(res.error_text()))
