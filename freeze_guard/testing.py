"""
Deterministic stand-ins for the OS collaborators, for tests and examples.

Everything operates on a temporary root directory: files are real, while
systemctl and external commands are recorded instead of executed.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from freeze_guard.settings.env import SystemEnv
from tools.proc.run import CommandResult
from tools.systemd import SystemctlError

SLEEP_TARGET_UNITS = {
    "sleep.target": "static",
    "suspend.target": "static",
    "hibernate.target": "static",
    "hybrid-sleep.target": "static",
    "suspend-then-hibernate.target": "static",
}

DEFAULT_TOOLS = ("dconf", "nvidia-smi", "udevadm", "update-grub", "apt", "notify-send")

NVIDIA_SLOT = "0000:01:00.0"
INTEL_SLOT = "0000:00:02.0"


class FakeRunner:
    """
    Records argv lists. Executables in `missing` raise FileNotFoundError,
    executables in `failures` exit 1, `timeouts` raise TimeoutError.
    `respond(argv)` may return a scripted CommandResult; None falls through
    to a silent success.
    """

    def __init__(
        self,
        *,
        missing: Iterable[str] = (),
        failures: Iterable[str] = (),
        timeouts: Iterable[str] = (),
        respond: Optional[Callable[[List[str]], Optional[CommandResult]]] = None,
    ):
        self.missing = set(missing)
        self.failures = set(failures)
        self.timeouts = set(timeouts)
        self.respond = respond
        self.calls: List[List[str]] = []

    def __call__(self, argv: Sequence[str], *, timeout: float = 20.0, env: Any = None) -> CommandResult:
        argv = list(argv)
        self.calls.append(argv)
        # `sudo -u USER env ... notify-send` is keyed by the real program.
        prog = "notify-send" if "notify-send" in argv else argv[0]
        if prog in self.missing:
            raise FileNotFoundError(prog)
        if prog in self.timeouts:
            raise TimeoutError(f"{prog} timed out after {timeout}s")
        if prog in self.failures:
            return CommandResult(argv=tuple(argv), returncode=1, stderr=f"{prog}: simulated failure")
        if self.respond is not None:
            res = self.respond(argv)
            if res is not None:
                return res
        return CommandResult(argv=tuple(argv), returncode=0)

    def ran(self, prog: str) -> bool:
        return any(c and c[0] == prog for c in self.calls)


def _norm(unit: str) -> str:
    return unit[: -len(".service")] if unit.endswith(".service") else unit


class FakeSystemctl:
    """
    In-memory unit-file and activity state.

    A unit file written under `<root>/etc/systemd/system` makes the unit
    exist (state "disabled" until enabled). Operations named in `failures`
    as "<op>:<unit>" raise SystemctlError.
    """

    offline = False

    def __init__(
        self,
        root: Optional[Path] = None,
        units: Optional[Dict[str, str]] = None,
        active: Iterable[str] = (),
        failures: Iterable[str] = (),
    ):
        self.root = root
        self.units: Dict[str, str] = dict(units or {})
        self.active = {_norm(u) for u in active}
        self.failures = set(failures)
        self.calls: List[List[str]] = []
        self._before_mask: Dict[str, str] = {}

    def _call(self, op: str, unit: str = "") -> None:
        self.calls.append([op, unit] if unit else [op])
        if f"{op}:{unit}" in self.failures or op in self.failures:
            raise SystemctlError(f"systemctl {op} {unit}: simulated failure")

    def _file_backed(self, unit: str) -> bool:
        return self.root is not None and (self.root / "etc" / "systemd" / "system" / unit).is_file()

    def is_enabled(self, unit: str) -> str:
        self._call("is-enabled", unit)
        if unit in self.units:
            return self.units[unit]
        if self._file_backed(unit):
            return "disabled"
        return "not-found"

    def is_active(self, unit: str) -> bool:
        self._call("is-active", unit)
        return _norm(unit) in self.active

    def list_active_services(self) -> List[str]:
        self._call("list-units")
        return sorted(f"{u}.service" for u in self.active if "." not in u)

    def mask(self, unit: str) -> None:
        self._call("mask", unit)
        self._before_mask[unit] = self.units.get(unit, "static")
        self.units[unit] = "masked"

    def unmask(self, unit: str) -> None:
        self._call("unmask", unit)
        if self.units.get(unit) == "masked":
            self.units[unit] = self._before_mask.pop(unit, "static")

    def enable(self, unit: str, *, now: bool = False) -> None:
        self._call("enable", unit)
        if self.is_enabled(unit) == "not-found":
            raise SystemctlError(f"systemctl enable {unit}: Unit file {unit} does not exist.")
        self.units[unit] = "enabled"
        if now:
            self.active.add(_norm(unit))

    def disable(self, unit: str, *, now: bool = False) -> None:
        self._call("disable", unit)
        if self._file_backed(unit):
            self.units.pop(unit, None)
        else:
            self.units[unit] = "disabled"
        if now:
            self.active.discard(_norm(unit))

    def start(self, unit: str) -> None:
        self._call("start", unit)
        self.active.add(_norm(unit))

    def restart(self, unit: str) -> None:
        self._call("restart", unit)
        self.active.add(_norm(unit))

    def daemon_reload(self) -> None:
        self._call("daemon-reload")


def make_env(
    root: Path,
    *,
    systemctl: Any = None,
    runner: Any = None,
    tools: Iterable[str] = DEFAULT_TOOLS,
) -> SystemEnv:
    available = set(tools)
    return SystemEnv(
        root=root,
        systemctl=systemctl if systemctl is not None else FakeSystemctl(root, units=dict(SLEEP_TARGET_UNITS)),
        runner=runner if runner is not None else FakeRunner(),
        which=lambda name: f"/usr/bin/{name}" if name in available else None,
        command_timeout=5.0,
        offline=False,
    )


def write(root: Path, rel: str, text: str) -> Path:
    p = root / rel.lstrip("/")
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p


def add_pci_device(root: Path, slot: str, vendor: str, *, device_class: str = "0x030000", d3cold: Optional[str] = "1", control: Optional[str] = "auto") -> Path:
    dev = root / "sys" / "bus" / "pci" / "devices" / slot
    write(root, f"sys/bus/pci/devices/{slot}/vendor", vendor + "\n")
    write(root, f"sys/bus/pci/devices/{slot}/class", device_class + "\n")
    if d3cold is not None:
        write(root, f"sys/bus/pci/devices/{slot}/d3cold_allowed", d3cold + "\n")
    if control is not None:
        write(root, f"sys/bus/pci/devices/{slot}/power/control", control + "\n")
    return dev


def seed_host(
    root: Path,
    *,
    nvidia: bool = True,
    gdm: bool = True,
    gnome: bool = True,
    kde: bool = False,
    grub: bool = True,
    x11: bool = True,
    systemd: bool = True,
) -> None:
    """
    Lay out a typical affected workstation under `root`: Ubuntu with GNOME on
    GDM and a hybrid Intel + NVIDIA laptop GPU, nothing fixed yet.
    """
    write(root, "etc/os-release", 'NAME="Ubuntu"\nID=ubuntu\nID_LIKE=debian\nPRETTY_NAME="Ubuntu 24.04 LTS"\n')
    if systemd:
        (root / "run" / "systemd" / "system").mkdir(parents=True, exist_ok=True)
    if nvidia:
        add_pci_device(root, NVIDIA_SLOT, "0x10de")
    add_pci_device(root, INTEL_SLOT, "0x8086", d3cold=None, control=None)
    if gdm:
        alias = root / "etc" / "systemd" / "system" / "display-manager.service"
        alias.parent.mkdir(parents=True, exist_ok=True)
        os.symlink("/lib/systemd/system/gdm3.service", alias)
        write(root, "etc/gdm3/greeter.dconf-defaults", "# GDM greeter defaults\n[org/gnome/desktop/interface]\nclock-show-date=true\n")
        write(root, "etc/passwd", "root:x:0:0:root:/root:/bin/bash\ngdm:x:120:125:Gnome Display Manager:/var/lib/gdm3:/bin/false\n")
    else:
        write(root, "etc/passwd", "root:x:0:0:root:/root:/bin/bash\n")
    if gnome:
        write(root, "usr/share/xsessions/ubuntu.desktop", "[Desktop Entry]\nName=Ubuntu\n")
    if kde:
        write(root, "usr/share/wayland-sessions/plasma.desktop", "[Desktop Entry]\nName=Plasma\n")
    if x11:
        (root / "etc" / "X11").mkdir(parents=True, exist_ok=True)
    if grub:
        write(root, "etc/default/grub", 'GRUB_DEFAULT=0\nGRUB_TIMEOUT=5\nGRUB_CMDLINE_LINUX_DEFAULT="quiet splash consoleblank=600"\nGRUB_CMDLINE_LINUX=""\n')
    write(root, "sys/module/kernel/parameters/consoleblank", "600\n")


def host_units() -> Dict[str, str]:
    """Unit-file states matching seed_host()."""
    units = dict(SLEEP_TARGET_UNITS)
    units["nvidia-persistenced.service"] = "disabled"
    units["power-profiles-daemon.service"] = "enabled"
    return units
