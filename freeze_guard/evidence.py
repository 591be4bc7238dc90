"""
Read-only freeze evidence for `diagnose`.

Settings say whether the host is protected; evidence says whether it has
already frozen: the NVIDIA driver and persistence mode, the running session
type, and the previous boot's journal. Nothing here writes or restarts
anything, and nothing here changes the diagnose exit code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from freeze_guard.core.host_context import HostContext
from freeze_guard.settings.env import SystemEnv
from tools.fs import read_text
from tools.journal import JournalError, count_matches, list_boots
from tools.nvidia import query_gpu

NVIDIA_DISPLAY_FAILURE = "NVIDIA.*Failed to set the display configuration"
XORG_IO_ERROR = "xf86CloseConsole.*Input/output error"
GNOME_SHELL_CRASH = "gnome-shell.*(crash|SIGSEGV|SIGABRT)"
LID_EVENT = "Lid (opened|closed)"

SHELL_PROCESSES = ("gnome-shell", "plasmashell", "cinnamon")

RECENT_BOOTS = 3


@dataclass(frozen=True)
class Finding:
    level: str
    topic: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"level": self.level, "topic": self.topic, "message": self.message}


@dataclass(frozen=True)
class Evidence:
    findings: Tuple[Finding, ...] = ()

    @property
    def risks(self) -> List[Finding]:
        return [f for f in self.findings if f.level == "risk"]

    def to_dict(self) -> Dict[str, Any]:
        return {"findings": [f.to_dict() for f in self.findings]}


class _Collector:
    def __init__(self) -> None:
        self.findings: List[Finding] = []

    def add(self, level: str, topic: str, message: str) -> None:
        self.findings.append(Finding(level, topic, message))


def collect_evidence(env: SystemEnv, host: HostContext) -> Evidence:
    """
    Gather evidence about the running host. For an alternate root only the
    GPU layout is reported: the driver, the session and the journal belong
    to the host running freeze-guard, not to the image.
    """
    out = _Collector()
    _gpu_layout(host, out)
    if env.offline:
        out.add("info", "host", "alternate root: driver, session and journal evidence not collected")
        return Evidence(tuple(out.findings))
    _driver(env, host, out)
    _session(env, host, out)
    _journal(env, out)
    return Evidence(tuple(out.findings))


def _gpu_layout(host: HostContext, out: _Collector) -> None:
    if host.has_gpu("nvidia") and (host.has_gpu("intel") or host.has_gpu("amd")):
        out.add("risk", "gpu", "hybrid GPU setup (NVIDIA + integrated), the highest-risk configuration")


def _nouveau_loaded(env: SystemEnv) -> bool:
    modules = read_text(env.path("/proc/modules")) or ""
    return any(line.split(" ", 1)[0] == "nouveau" for line in modules.splitlines())


def _driver(env: SystemEnv, host: HostContext, out: _Collector) -> None:
    nouveau = _nouveau_loaded(env)
    if env.which("nvidia-smi") is None:
        if nouveau:
            out.add("ok", "driver", "nouveau driver in use; generally not affected")
        elif host.has_gpu("nvidia"):
            out.add("warning", "driver", "NVIDIA GPU detected but no driver loaded")
        else:
            out.add("ok", "driver", "no NVIDIA driver in use")
        return

    try:
        gpu = query_gpu(["driver_version", "persistence_mode", "name"], env.runner, timeout=env.command_timeout)
    except (OSError, TimeoutError, RuntimeError) as e:
        out.add("warning", "driver", str(e))
        return

    out.add(
        "info",
        "driver",
        "driver {} on {}".format(gpu.get("driver_version", "unknown"), gpu.get("name", "unknown GPU")),
    )
    if nouveau:
        out.add("ok", "driver", "nouveau driver in use; generally not affected")
    else:
        out.add("warning", "driver", "proprietary NVIDIA driver, known to have suspend/resume issues")

    if gpu.get("persistence_mode") == "Enabled":
        out.add("ok", "persistence", "NVIDIA persistence mode enabled")
    else:
        out.add("warning", "persistence", "NVIDIA persistence mode disabled (can contribute to resume failures)")


def _shell_environ(env: SystemEnv) -> Optional[Dict[str, str]]:
    """Environment of the first running desktop shell, if it can be read."""
    proc = env.path("/proc")
    if not proc.is_dir():
        return None
    for pid_dir in sorted(proc.iterdir(), key=lambda p: p.name):
        if not pid_dir.name.isdigit():
            continue
        try:
            comm = (pid_dir / "comm").read_text(encoding="utf-8").strip()
            if comm not in SHELL_PROCESSES:
                continue
            raw = (pid_dir / "environ").read_bytes()
        except OSError:
            # processes exit and other users' environ is unreadable
            continue
        values = {}
        for item in raw.split(b"\0"):
            key, sep, value = item.decode("utf-8", "replace").partition("=")
            if sep:
                values[key] = value
        return values
    return None


def _session(env: SystemEnv, host: HostContext, out: _Collector) -> None:
    values = _shell_environ(env)
    session_type = (values or {}).get("XDG_SESSION_TYPE", "")
    if session_type == "x11":
        out.add("info", "session", "session type: X11")
        if host.has_gpu("nvidia"):
            out.add("warning", "session", "X11 + NVIDIA is the most common configuration for idle freezes")
    elif session_type == "wayland":
        out.add("info", "session", "session type: Wayland; it can also be affected, though failure modes differ")
    else:
        out.add("info", "session", "session type: could not detect (no desktop shell running, or run from a TTY)")
    desktop = (values or {}).get("XDG_CURRENT_DESKTOP")
    if desktop:
        out.add("info", "session", f"desktop environment: {desktop}")


def _journal(env: SystemEnv, out: _Collector) -> None:
    if env.which("journalctl") is None:
        out.add("info", "journal", "journalctl not available; freeze history not checked")
        return
    timeout = env.command_timeout

    def count(pattern: str, boot: str = "-1") -> int:
        return count_matches(env.runner, pattern, boot=boot, timeout=timeout)

    try:
        nvidia = count(NVIDIA_DISPLAY_FAILURE)
        xorg = count(XORG_IO_ERROR)
        crashes = count(GNOME_SHELL_CRASH)
        lid = count(LID_EVENT)
    except JournalError as e:
        out.add("info", "journal", f"previous boot not available: {e}")
    except (OSError, TimeoutError) as e:
        out.add("warning", "journal", f"journal scan incomplete: {e}")
        return
    else:
        if nvidia:
            out.add("risk", "journal", f"{nvidia} NVIDIA display configuration failure(s) in previous boot")
        if xorg:
            out.add("risk", "journal", f"{xorg} Xorg I/O error(s) in previous boot; the display was locked up")
        if crashes:
            out.add("risk", "journal", f"{crashes} GNOME Shell crash(es) in previous boot")
        if lid:
            out.add("info", "journal", f"{lid} lid open/close event(s) in previous boot")
            out.add("warning", "journal", "lid events near freezes point at suspend/resume as the trigger")
        if not (nvidia or xorg or crashes):
            out.add("ok", "journal", "no freeze signatures in previous boot")

    try:
        boots = list_boots(env.runner, timeout=timeout)
        out.add("info", "journal", f"{len(boots)} boot(s) recorded in the journal")
        recurring = sum(count(NVIDIA_DISPLAY_FAILURE, boot=b) for b in boots[-RECENT_BOOTS:])
    except (JournalError, OSError, TimeoutError) as e:
        out.add("warning", "journal", f"journal scan incomplete: {e}")
        return
    if recurring > 2:
        out.add("risk", "journal", "NVIDIA display failures across multiple recent boots; this is a recurring issue")

