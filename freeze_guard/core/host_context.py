from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Mapping, Optional

from tools.fs.read import read_text
from tools.sysfs.pci import display_devices

if TYPE_CHECKING:
    from freeze_guard.settings.env import SystemEnv

DESKTOPS = ("gnome", "kde", "cinnamon")

# display-manager service name -> display manager family
DISPLAY_MANAGERS = {
    "gdm3": "gdm",
    "gdm": "gdm",
    "sddm": "sddm",
    "lightdm": "lightdm",
    "lxdm": "lxdm",
    "xdm": "xdm",
    "greetd": "greetd",
}

DISTRO_FAMILIES = {
    "debian": "debian",
    "ubuntu": "debian",
    "linuxmint": "debian",
    "pop": "debian",
    "fedora": "fedora",
    "rhel": "fedora",
    "centos": "fedora",
    "rocky": "fedora",
    "almalinux": "fedora",
    "alma": "fedora",
    "arch": "arch",
    "manjaro": "arch",
    "endeavouros": "arch",
    "opensuse": "suse",
    "suse": "suse",
    "sles": "suse",
}

PROBED_TOOLS = (
    "dconf",
    "nvidia-smi",
    "udevadm",
    "update-grub",
    "grub2-mkconfig",
    "grub-mkconfig",
    "apt",
    "apt-get",
    "dnf",
    "pacman",
    "zypper",
    "notify-send",
)

GDM_USERS = ("gdm", "Debian-gdm")


@dataclass(frozen=True)
class HostContext:
    """
    Immutable snapshot of the host, computed once per run.
    Applicability checks read it; nothing re-detects mid-run.
    """

    desktop: str = "unknown"
    display_manager: str = "unknown"
    gpu_vendors: FrozenSet[str] = frozenset()
    init_system: str = "unknown"
    distro_family: str = "unknown"
    desktops: FrozenSet[str] = frozenset()
    tools: FrozenSet[str] = frozenset()
    has_gdm_user: bool = False

    @classmethod
    def empty(cls) -> "HostContext":
        return cls()

    def has_gpu(self, vendor: str) -> bool:
        return vendor in self.gpu_vendors

    def has_desktop(self, name: str) -> bool:
        return name == self.desktop or name in self.desktops

    def has_tool(self, name: str) -> bool:
        return name in self.tools

    @property
    def uses_systemd(self) -> bool:
        return self.init_system == "systemd"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "desktop": self.desktop,
            "display_manager": self.display_manager,
            "gpu_vendors": sorted(self.gpu_vendors),
            "init_system": self.init_system,
            "distro_family": self.distro_family,
            "desktops": sorted(self.desktops),
            "tools": sorted(self.tools),
            "has_gdm_user": self.has_gdm_user,
        }


def _os_release(env: "SystemEnv") -> Dict[str, str]:
    out: Dict[str, str] = {}
    for candidate in ("/etc/os-release", "/usr/lib/os-release"):
        text = read_text(env.path(candidate))
        if text is None:
            continue
        for line in text.splitlines():
            if "=" not in line or line.lstrip().startswith("#"):
                continue
            k, v = line.split("=", 1)
            out[k.strip()] = v.strip().strip("\"'")
        break
    return out


def detect_distro_family(env: "SystemEnv") -> str:
    rel = _os_release(env)
    ids = [rel.get("ID", "")] + rel.get("ID_LIKE", "").split()
    for raw in ids:
        key = raw.lower()
        if key in DISTRO_FAMILIES:
            return DISTRO_FAMILIES[key]
        if key.startswith("opensuse"):
            return "suse"
    return "unknown"


def detect_init_system(env: "SystemEnv") -> str:
    # sd_booted(3): systemd is PID 1 iff this directory exists.
    return "systemd" if env.path("/run/systemd/system").is_dir() else "unknown"


def detect_display_manager(env: "SystemEnv") -> str:
    alias = env.path("/etc/systemd/system/display-manager.service")
    if alias.is_symlink():
        name = os.path.basename(os.readlink(alias))
        if name.endswith(".service"):
            name = name[: -len(".service")]
        if name in DISPLAY_MANAGERS:
            return DISPLAY_MANAGERS[name]

    for service in ("gdm3", "gdm", "sddm", "lightdm"):
        try:
            if env.systemctl.is_active(service):
                return DISPLAY_MANAGERS[service]
        except (OSError, TimeoutError, RuntimeError):
            return "unknown"
    return "unknown"


def _desktop_from_name(name: str) -> Optional[str]:
    n = name.lower()
    if "cinnamon" in n:
        return "cinnamon"
    if "plasma" in n or n.startswith("kde"):
        return "kde"
    if "gnome" in n or n.startswith("ubuntu"):
        return "gnome"
    return None


def detect_desktops(env: "SystemEnv", environ: Mapping[str, str]) -> FrozenSet[str]:
    found = set()
    for d in ("/usr/share/xsessions", "/usr/share/wayland-sessions"):
        sessions = env.path(d)
        if not sessions.is_dir():
            continue
        for entry in sessions.glob("*.desktop"):
            name = _desktop_from_name(entry.stem)
            if name is not None:
                found.add(name)
    for token in environ.get("XDG_CURRENT_DESKTOP", "").split(":"):
        name = _desktop_from_name(token) if token else None
        if name is not None:
            found.add(name)
    return frozenset(found)


def detect_gpu_vendors(env: "SystemEnv") -> FrozenSet[str]:
    return frozenset(d.vendor_name for d in display_devices(env.path("/sys")) if d.vendor_name != "other")


def detect_tools(env: "SystemEnv") -> FrozenSet[str]:
    return frozenset(t for t in PROBED_TOOLS if env.which(t))


def detect_gdm_user(env: "SystemEnv") -> bool:
    text = read_text(env.path("/etc/passwd")) or ""
    users = {line.split(":", 1)[0] for line in text.splitlines() if line and not line.startswith("#")}
    return any(u in users for u in GDM_USERS)


def detect_host_context(env: "SystemEnv", environ: Optional[Mapping[str, str]] = None) -> HostContext:
    """
    Build the per-run HostContext from explicit capability checks:
    os-release, sd_booted, the display-manager alias, installed session
    files, PCI display classes and PATH lookups.
    """
    if environ is None:
        environ = os.environ
    desktops = detect_desktops(env, environ)
    primary = next((d for d in DESKTOPS if d in desktops), "unknown")
    return HostContext(
        desktop=primary,
        display_manager=detect_display_manager(env),
        gpu_vendors=detect_gpu_vendors(env),
        init_system=detect_init_system(env),
        distro_family=detect_distro_family(env),
        desktops=desktops,
        tools=detect_tools(env),
        has_gdm_user=detect_gdm_user(env),
    )
