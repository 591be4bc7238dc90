"""
Bodies of every file freeze-guard owns.

Probes compare on-disk content against these byte for byte, so any edit
here is picked up as drift on the next run and rewritten.
"""

from __future__ import annotations

HEADER = "# Managed by freeze-guard. Local edits are reverted by `freeze-guard monitor`.\n"

BLOCK_BEGIN = "# >>> freeze-guard >>>"
BLOCK_END = "# <<< freeze-guard <<<"
# Marker used by older releases; their block ran to end of file.
LEGACY_BLOCK_MARKER = "# === ADDED BY linux-idle-freeze-guard ==="

SLEEP_TARGETS = ("sleep", "suspend", "hibernate", "hybrid-sleep", "suspend-then-hibernate")

UDEV_NVIDIA_PM = HEADER + (
    "# Keep NVIDIA display controllers out of D3cold and runtime suspend.\n"
    'ACTION=="add", SUBSYSTEM=="pci", ATTR{vendor}=="0x10de", ATTR{class}=="0x030000", ATTR{power/control}="on"\n'
    'ACTION=="add", SUBSYSTEM=="pci", ATTR{vendor}=="0x10de", ATTR{class}=="0x030000", ATTR{d3cold_allowed}="0"\n'
)

SLEEP_CONF_DENY_ALL = HEADER + (
    "[Sleep]\n"
    "AllowSuspend=no\n"
    "AllowHibernation=no\n"
    "AllowSuspendThenHibernate=no\n"
    "AllowHybridSleep=no\n"
)

LOGIND_IGNORE_ALL = HEADER + (
    "[Login]\n"
    "HandlePowerKey=ignore\n"
    "HandlePowerKeyLongPress=ignore\n"
    "HandleSuspendKey=ignore\n"
    "HandleSuspendKeyLongPress=ignore\n"
    "HandleHibernateKey=ignore\n"
    "HandleHibernateKeyLongPress=ignore\n"
    "HandleLidSwitch=ignore\n"
    "HandleLidSwitchExternalPower=ignore\n"
    "HandleLidSwitchDocked=ignore\n"
    "IdleAction=ignore\n"
    "IdleActionSec=0\n"
)

TMPFILES_POWER_STATE = HEADER + "z /sys/power/state 0000 root root -\n"

DCONF_PROFILE_USER_LINE = "system-db:local"
DCONF_PROFILE_USER = "user-db:user\nsystem-db:local\n"

DCONF_LOCAL_OVERRIDE = HEADER + (
    "[org/gnome/settings-daemon/plugins/power]\n"
    "sleep-inactive-ac-type='nothing'\n"
    "sleep-inactive-battery-type='nothing'\n"
    "sleep-inactive-ac-timeout=0\n"
    "sleep-inactive-battery-timeout=0\n"
    "idle-dim=false\n"
    "lid-close-ac-action='nothing'\n"
    "lid-close-battery-action='nothing'\n"
    "\n"
    "[org/gnome/desktop/session]\n"
    "idle-delay=uint32 0\n"
    "\n"
    "[org/gnome/desktop/screensaver]\n"
    "idle-activation-enabled=false\n"
    "lock-enabled=false\n"
)

DCONF_LOCAL_LOCKS = (
    "/org/gnome/settings-daemon/plugins/power/sleep-inactive-ac-type\n"
    "/org/gnome/settings-daemon/plugins/power/sleep-inactive-battery-type\n"
    "/org/gnome/settings-daemon/plugins/power/sleep-inactive-ac-timeout\n"
    "/org/gnome/settings-daemon/plugins/power/sleep-inactive-battery-timeout\n"
    "/org/gnome/desktop/session/idle-delay\n"
    "/org/gnome/desktop/screensaver/idle-activation-enabled\n"
)

DCONF_PROFILE_GDM = (
    "user-db:user\n"
    "system-db:gdm\n"
    "file-db:/usr/share/gdm/greeter-dconf-defaults\n"
)

DCONF_GDM_OVERRIDE = HEADER + (
    "[org/gnome/settings-daemon/plugins/power]\n"
    "sleep-inactive-ac-timeout=0\n"
    "sleep-inactive-ac-type='nothing'\n"
    "sleep-inactive-battery-timeout=0\n"
    "sleep-inactive-battery-type='nothing'\n"
    "\n"
    "[org/gnome/desktop/screensaver]\n"
    "idle-activation-enabled=false\n"
    "lock-enabled=false\n"
    "\n"
    "[org/gnome/desktop/session]\n"
    "idle-delay=uint32 0\n"
)

GDM_GREETER_BLOCK = (
    "[org/gnome/settings-daemon/plugins/power]\n"
    "sleep-inactive-ac-timeout=0\n"
    "sleep-inactive-ac-type='nothing'\n"
    "sleep-inactive-battery-timeout=0\n"
    "sleep-inactive-battery-type='nothing'\n"
)


def _kde_profile(section: str) -> str:
    return (
        f"[{section}][DPMSControl]\n"
        "idleTimeout=0\n"
        "lockBeforeTurnOff=0\n"
        "\n"
        f"[{section}][SuspendSession]\n"
        "idleTime=0\n"
        "suspendThenHibernate=false\n"
        "suspendType=0\n"
    )


KDE_POWER_PROFILE = HEADER + "\n" + "\n".join(_kde_profile(s) for s in ("AC", "Battery", "LowBattery"))

XORG_DPMS_DISABLED = HEADER + (
    "\n"
    'Section "Extensions"\n'
    '    Option "DPMS" "false"\n'
    "EndSection\n"
    "\n"
    'Section "ServerFlags"\n'
    '    Option "StandbyTime" "0"\n'
    '    Option "SuspendTime" "0"\n'
    '    Option "OffTime"     "0"\n'
    '    Option "BlankTime"   "0"\n'
    "EndSection\n"
)

PPD_PERFORMANCE_DROPIN = HEADER + (
    "[Service]\n"
    "ExecStartPost=/bin/sh -c 'sleep 2 && powerprofilesctl set performance || true'\n"
)

KERNEL_TOKENS = {
    "kernel-cmdline:consoleblank": "consoleblank=0",
    "kernel-cmdline:mem-sleep-s2idle": "mem_sleep_default=s2idle",
}

MONITOR_UNIT = "freeze-guard-check"


def render_monitor_service(exec_start: str) -> str:
    return HEADER + (
        "[Unit]\n"
        "Description=freeze-guard: re-apply power settings reverted by updates\n"
        "After=local-fs.target\n"
        "\n"
        "[Service]\n"
        "Type=oneshot\n"
        f"ExecStart={exec_start}\n"
    )


def render_monitor_timer(on_boot_sec: str = "2min", interval: str = "6h") -> str:
    return HEADER + (
        "[Unit]\n"
        "Description=freeze-guard: periodic drift check\n"
        "\n"
        "[Timer]\n"
        f"OnBootSec={on_boot_sec}\n"
        f"OnUnitActiveSec={interval}\n"
        "Persistent=true\n"
        "\n"
        "[Install]\n"
        "WantedBy=timers.target\n"
    )


def render_apt_hook(exec_start: str) -> str:
    return (
        "// Managed by freeze-guard.\n"
        "// Re-check power settings after every dpkg run.\n"
        f'DPkg::Post-Invoke {{ "{exec_start} >/dev/null 2>&1 || true"; }};\n'
    )


def render_pacman_hook(exec_start: str) -> str:
    return HEADER + (
        "[Trigger]\n"
        "Operation = Install\n"
        "Operation = Upgrade\n"
        "Type = Package\n"
        "Target = *\n"
        "\n"
        "[Action]\n"
        "Description = Checking freeze-guard settings...\n"
        "When = PostTransaction\n"
        f"Exec = {exec_start}\n"
    )


def render_dnf_action(exec_start: str) -> str:
    # post-transaction-actions format: <package glob>:<state>:<command>
    return HEADER + f"*:any:{exec_start}\n"
