from __future__ import annotations

from typing import List

from tools.proc.run import Runner, run_command


class JournalError(RuntimeError):
    pass


def count_matches(runner: Runner = run_command, pattern: str = "", *, boot: str = "-1", timeout: float = 20.0) -> int:
    """
    Number of journal lines of one boot matching `pattern` (PCRE, as
    `journalctl --grep`). No match is 0; a boot the journal does not hold
    raises JournalError.
    """
    res = runner(["journalctl", "--no-pager", "--quiet", "-b", boot, "--grep", pattern], timeout=timeout)
    lines = [ln for ln in res.stdout.splitlines() if ln.strip() and not ln.startswith("-- ")]
    if res.ok:
        return len(lines)
    # journalctl exits 1 without output when --grep matches nothing
    if not lines and not res.stderr.strip():
        return 0
    raise JournalError("journalctl -b {}: {}".format(boot, res.error_text()))


def list_boots(runner: Runner = run_command, *, timeout: float = 20.0) -> List[str]:
    """Boot ids recorded in the journal, oldest first."""
    res = runner(["journalctl", "--list-boots", "--no-pager", "--quiet"], timeout=timeout)
    if not res.ok:
        raise JournalError("journalctl --list-boots: {}".format(res.error_text()))
    boots = []
    for line in res.stdout.splitlines():
        fields = line.split()
        # newer systemd prints an "IDX BOOT ID ..." header line
        if len(fields) >= 2 and fields[0].lstrip("-").isdigit():
            boots.append(fields[1])
    return boots
