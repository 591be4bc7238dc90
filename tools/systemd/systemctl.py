from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from tools.proc.run import CommandResult, Runner, run_command


class SystemctlError(RuntimeError):
    pass


class Systemctl:
    """
    Thin wrapper over the systemctl CLI.

    When `root` is set (not "/"), unit-file operations run with --root and
    runtime operations (start/stop/restart/daemon-reload/is-active) are
    offline no-ops, mirroring what systemctl itself allows for an image root.
    """

    def __init__(self, runner: Runner = run_command, *, timeout: float = 20.0, root: Optional[Path] = None):
        self._runner = runner
        self._timeout = timeout
        self._root = root if root is not None and root != Path("/") else None

    @property
    def offline(self) -> bool:
        return self._root is not None

    def _run(self, *args: str, unit_file_op: bool = False) -> CommandResult:
        argv = ["systemctl"]
        if unit_file_op and self._root is not None:
            argv.append("--root={}".format(self._root))
        argv.extend(args)
        return self._runner(argv, timeout=self._timeout)

    def _check(self, res: CommandResult, what: str) -> None:
        if not res.ok:
            raise SystemctlError("systemctl {}: {}".format(what, res.error_text()))

    def is_enabled(self, unit: str) -> str:
        """
        Return the unit-file state (enabled, disabled, static, masked, ...).
        Missing units report "not-found" across systemd versions.
        """
        res = self._run("is-enabled", unit, unit_file_op=True)
        out = res.stdout.strip()
        if out:
            return out.splitlines()[0].strip()
        err = res.stderr.lower()
        if "no such file" in err or "not found" in err or "not-found" in err:
            return "not-found"
        raise SystemctlError("systemctl is-enabled {}: {}".format(unit, res.error_text()))

    def is_active(self, unit: str) -> bool:
        if self.offline:
            return False
        return self._run("is-active", "--quiet", unit).ok

    def list_active_services(self) -> List[str]:
        if self.offline:
            return []
        res = self._run("list-units", "--type=service", "--state=active", "--no-legend", "--plain")
        self._check(res, "list-units")
        names = []
        for line in res.stdout.splitlines():
            parts = line.split()
            if parts:
                names.append(parts[0])
        return names

    def mask(self, unit: str) -> None:
        self._check(self._run("mask", unit, unit_file_op=True), "mask {}".format(unit))

    def unmask(self, unit: str) -> None:
        self._check(self._run("unmask", unit, unit_file_op=True), "unmask {}".format(unit))

    def enable(self, unit: str, *, now: bool = False) -> None:
        args = ["enable", unit]
        if now and not self.offline:
            args.insert(1, "--now")
        self._check(self._run(*args, unit_file_op=True), "enable {}".format(unit))

    def disable(self, unit: str, *, now: bool = False) -> None:
        args = ["disable", unit]
        if now and not self.offline:
            args.insert(1, "--now")
        self._check(self._run(*args, unit_file_op=True), "disable {}".format(unit))

    def start(self, unit: str) -> None:
        if self.offline:
            return
        self._check(self._run("start", unit), "start {}".format(unit))

    def restart(self, unit: str) -> None:
        if self.offline:
            return
        self._check(self._run("restart", unit), "restart {}".format(unit))

    def daemon_reload(self) -> None:
        if self.offline:
            return
        self._check(self._run("daemon-reload"), "daemon-reload")
