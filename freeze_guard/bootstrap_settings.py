from __future__ import annotations

import sys
from typing import Callable, Iterable, Optional, Sequence, Tuple

from freeze_guard.config import Config
from freeze_guard.core.errors import ApplyFailed, ValidationError
from freeze_guard.core.host_context import HostContext
from freeze_guard.core.setting import EffectiveAfter, Severity, always
from freeze_guard.registry.catalog import Catalog
from freeze_guard.settings import content
from freeze_guard.settings.env import SystemEnv
from freeze_guard.settings.kinds import (
    Part,
    absent_part,
    block_part,
    file_part,
    grub_token_part,
    line_part,
    nvidia_pci_part,
    setting_from_parts,
    sysfs_part,
    unit_enabled_part,
    unit_mask_part,
)
from tools.dconf.update import run as dconf_update
from tools.grub import regenerate as grub_regenerate

# uninstall keeps the sleep target masks unless suspend is explicitly restored.
SUSPEND_DENY = "suspend-deny"
SUSPEND_POLICY = "suspend-policy"


# -- applicability -----------------------------------------------------------


def _nvidia(h: HostContext) -> bool:
    return h.has_gpu("nvidia")


def _systemd(h: HostContext) -> bool:
    return h.uses_systemd


def _dconf(h: HostContext) -> bool:
    return h.has_tool("dconf") or h.has_desktop("gnome") or h.has_desktop("cinnamon")


def _gdm(h: HostContext) -> bool:
    return h.display_manager == "gdm" or h.has_gdm_user


def _kde(h: HostContext) -> bool:
    return h.has_desktop("kde")


def _nvidia_driver(h: HostContext) -> bool:
    return h.has_tool("nvidia-smi")


def _apt(h: HostContext) -> bool:
    return h.has_tool("apt") or h.has_tool("apt-get")


def _pacman(h: HostContext) -> bool:
    return h.has_tool("pacman")


def _dnf(h: HostContext) -> bool:
    return h.has_tool("dnf")


# -- post-write hooks --------------------------------------------------------


def _dconf_hook(env: SystemEnv) -> Tuple[str, Callable[[], None]]:
    def hook() -> None:
        if env.offline or not env.which("dconf"):
            return
        dconf_update(env.runner, timeout=env.command_timeout)

    return ("dconf-update", hook)


def _udev_hook(env: SystemEnv) -> Tuple[str, Callable[[], None]]:
    def hook() -> None:
        if env.offline or not env.which("udevadm"):
            return
        res = env.run(["udevadm", "control", "--reload-rules"])
        if not res.ok:
            raise ApplyFailed(
                code="apply.failed",
                message="udevadm control --reload-rules: {}".format(res.error_text()),
                data={"argv": list(res.argv)},
            )

    return ("udev-reload", hook)


def _grub_hook(env: SystemEnv) -> Tuple[str, Callable[[], None]]:
    def hook() -> None:
        if env.offline:
            return
        grub_regenerate(env.runner, which=env.which)

    return ("grub-regenerate", hook)


def _reload_hook(env: SystemEnv) -> Tuple[str, Callable[[], None]]:
    return ("daemon-reload", env.systemctl.daemon_reload)


def monitor_command(cfg: Config, env: SystemEnv) -> str:
    """Command line the timer and package hooks invoke."""
    if cfg.monitor.exec_start:
        return cfg.monitor.exec_start
    exe = env.which("freeze-guard")
    if exe:
        return f"{exe} monitor"
    return f"{sys.executable} -m freeze_guard monitor"


# -- catalogs ----------------------------------------------------------------


def build_remediation_catalog(env: SystemEnv, cfg: Optional[Config] = None) -> Catalog:
    """
    The freeze remediation settings, in the order they are reconciled:
    root cause (GPU D3cold) first, then every layer that can trigger suspend
    or blank the display.
    """
    cat = Catalog()

    def reg(
        setting_id: str,
        title: str,
        setting_class: str,
        severity: Severity,
        effective_after: EffectiveAfter,
        parts: Sequence[Part],
        applies: Callable[[HostContext], bool] = always,
        **kw,
    ) -> None:
        cat.register(
            setting_from_parts(setting_id, title, setting_class, severity, effective_after, parts, applies=applies, **kw)
        )

    reg(
        "udev-rule:nvidia-d3cold",
        "NVIDIA D3cold disabled by udev rule",
        "gpu-power",
        Severity.CRITICAL,
        EffectiveAfter.REBOOT,
        [file_part(env, "/etc/udev/rules.d/80-nvidia-pm.rules", content.UDEV_NVIDIA_PM)],
        _nvidia,
        after_apply=_udev_hook(env),
    )
    reg(
        "sysfs:nvidia-d3cold-live",
        "NVIDIA D3cold and runtime suspend disabled now",
        "gpu-power",
        Severity.CRITICAL,
        EffectiveAfter.LIVE,
        [nvidia_pci_part(env)],
        _nvidia,
    )
    for target in content.SLEEP_TARGETS:
        reg(
            f"systemd-sleep-target-mask:{target}",
            f"systemd {target}.target masked",
            SUSPEND_DENY,
            Severity.CRITICAL,
            EffectiveAfter.LIVE,
            [unit_mask_part(env, f"{target}.target")],
            _systemd,
        )
    reg(
        "systemd-sleep-conf:deny-all",
        "systemd-sleep denies every sleep mode",
        SUSPEND_POLICY,
        Severity.WARNING,
        EffectiveAfter.LIVE,
        [file_part(env, "/etc/systemd/sleep.conf.d/freeze-guard.conf", content.SLEEP_CONF_DENY_ALL)],
        _systemd,
    )
    # logind is never restarted: that revokes input devices from the running session.
    reg(
        "logind-dropin:ignore-all",
        "logind ignores power keys, lid switch and idle",
        SUSPEND_POLICY,
        Severity.CRITICAL,
        EffectiveAfter.REBOOT,
        [file_part(env, "/etc/systemd/logind.conf.d/freeze-guard.conf", content.LOGIND_IGNORE_ALL)],
        _systemd,
    )
    reg(
        "tmpfiles:sys-power-state",
        "/sys/power/state locked at boot",
        SUSPEND_POLICY,
        Severity.INFO,
        EffectiveAfter.REBOOT,
        [file_part(env, "/etc/tmpfiles.d/freeze-guard-power-state.conf", content.TMPFILES_POWER_STATE)],
        _systemd,
    )
    reg(
        "dconf-profile:user",
        "dconf user profile reads the local system database",
        "session-idle",
        Severity.WARNING,
        EffectiveAfter.SERVICE_RESTART,
        [line_part(env, "/etc/dconf/profile/user", content.DCONF_PROFILE_USER_LINE, content.DCONF_PROFILE_USER)],
        _dconf,
        after_apply=_dconf_hook(env),
    )
    reg(
        "dconf-override:local",
        "GNOME idle suspend, dimming and screensaver disabled",
        "session-idle",
        Severity.CRITICAL,
        EffectiveAfter.SERVICE_RESTART,
        [file_part(env, "/etc/dconf/db/local.d/00-freeze-guard", content.DCONF_LOCAL_OVERRIDE)],
        _dconf,
        after_apply=_dconf_hook(env),
        after_revert=_dconf_hook(env),
    )
    reg(
        "dconf-locks:local",
        "GNOME idle keys locked against user and update changes",
        "session-idle",
        Severity.WARNING,
        EffectiveAfter.SERVICE_RESTART,
        [file_part(env, "/etc/dconf/db/local.d/locks/freeze-guard", content.DCONF_LOCAL_LOCKS)],
        _dconf,
        after_apply=_dconf_hook(env),
        after_revert=_dconf_hook(env),
    )
    reg(
        "dconf-legacy-override:removed",
        "Superseded 00-no-suspend override removed",
        "legacy-cleanup",
        Severity.INFO,
        EffectiveAfter.SERVICE_RESTART,
        [absent_part(env, "/etc/dconf/db/local.d/00-no-suspend")],
        _dconf,
        after_apply=_dconf_hook(env),
    )
    reg(
        "gdm-greeter-power",
        "GDM login screen never suspends",
        "session-idle",
        Severity.WARNING,
        EffectiveAfter.SERVICE_RESTART,
        [
            file_part(env, "/etc/dconf/profile/gdm", content.DCONF_PROFILE_GDM, keep_on_revert=True),
            file_part(env, "/etc/dconf/db/gdm.d/10-freeze-guard", content.DCONF_GDM_OVERRIDE),
            block_part(
                env,
                "/etc/gdm3/greeter.dconf-defaults",
                content.GDM_GREETER_BLOCK,
                begin=content.BLOCK_BEGIN,
                end=content.BLOCK_END,
                legacy_marker=content.LEGACY_BLOCK_MARKER,
            ),
        ],
        _gdm,
        after_apply=_dconf_hook(env),
        after_revert=_dconf_hook(env),
    )
    reg(
        "kde-power-profile",
        "KDE PowerDevil never suspends or turns off the display",
        "session-idle",
        Severity.WARNING,
        EffectiveAfter.SERVICE_RESTART,
        [file_part(env, "/etc/xdg/powermanagementprofilesrc", content.KDE_POWER_PROFILE)],
        _kde,
    )
    reg(
        "xorg-dpms:disabled",
        "X11 DPMS and blanking disabled",
        "display-power",
        Severity.WARNING,
        EffectiveAfter.REBOOT,
        [file_part(env, "/etc/X11/xorg.conf.d/10-freeze-guard-dpms.conf", content.XORG_DPMS_DISABLED, precondition="/etc/X11")],
    )
    reg(
        "nvidia-persistenced:enabled",
        "nvidia-persistenced enabled",
        "gpu-power",
        Severity.WARNING,
        EffectiveAfter.LIVE,
        [unit_enabled_part(env, "nvidia-persistenced.service")],
        _nvidia_driver,
        revertible=False,
    )

    def _ppd_installed() -> bool:
        return env.systemctl.is_enabled("power-profiles-daemon.service") != "not-found"

    reg(
        "power-profiles-daemon:performance",
        "power-profiles-daemon starts in performance mode",
        "display-power",
        Severity.INFO,
        EffectiveAfter.SERVICE_RESTART,
        [
            file_part(
                env,
                "/etc/systemd/system/power-profiles-daemon.service.d/freeze-guard.conf",
                content.PPD_PERFORMANCE_DROPIN,
                precondition=_ppd_installed,
            )
        ],
        _systemd,
        after_apply=_reload_hook(env),
        after_revert=_reload_hook(env),
    )
    for setting_id, token in content.KERNEL_TOKENS.items():
        reg(
            setting_id,
            f"Kernel command line has {token}",
            "kernel-param",
            Severity.INFO,
            EffectiveAfter.REBOOT,
            [grub_token_part(env, token)],
            after_apply=_grub_hook(env),
            after_revert=_grub_hook(env),
        )
    reg(
        "console-blank:live",
        "Console blanking disabled now",
        "kernel-param",
        Severity.INFO,
        EffectiveAfter.LIVE,
        [sysfs_part(env, "/sys/module/kernel/parameters/consoleblank", "0")],
    )
    return cat


def build_monitor_catalog(env: SystemEnv, cfg: Optional[Config] = None) -> Catalog:
    """Registrations that trigger `freeze-guard monitor`: a systemd timer and package manager hooks."""
    cfg = cfg or Config()
    cmd = monitor_command(cfg, env)
    unit = content.MONITOR_UNIT
    cat = Catalog()
    cat.register(
        setting_from_parts(
            "monitor-timer",
            f"{unit}.timer installed and enabled",
            "monitor",
            Severity.WARNING,
            EffectiveAfter.LIVE,
            [
                file_part(env, f"/etc/systemd/system/{unit}.service", content.render_monitor_service(cmd)),
                file_part(
                    env,
                    f"/etc/systemd/system/{unit}.timer",
                    content.render_monitor_timer(cfg.monitor.on_boot_sec, cfg.monitor.interval),
                ),
                unit_enabled_part(env, f"{unit}.timer", missing_is_absent=True, reload=True),
            ],
            applies=_systemd,
            after_revert=_reload_hook(env),
        )
    )
    cat.register(
        setting_from_parts(
            "pkg-hook:apt",
            "apt runs the drift check after dpkg",
            "monitor",
            Severity.INFO,
            EffectiveAfter.LIVE,
            [file_part(env, "/etc/apt/apt.conf.d/99-freeze-guard", content.render_apt_hook(cmd))],
            applies=_apt,
        )
    )
    cat.register(
        setting_from_parts(
            "pkg-hook:pacman",
            "pacman runs the drift check after transactions",
            "monitor",
            Severity.INFO,
            EffectiveAfter.LIVE,
            [file_part(env, "/etc/pacman.d/hooks/freeze-guard.hook", content.render_pacman_hook(cmd))],
            applies=_pacman,
        )
    )
    cat.register(
        setting_from_parts(
            "pkg-hook:dnf",
            "dnf runs the drift check after transactions",
            "monitor",
            Severity.INFO,
            EffectiveAfter.LIVE,
            [
                file_part(
                    env,
                    "/etc/dnf/plugins/post-transaction-actions.d/freeze-guard.action",
                    content.render_dnf_action(cmd),
                    precondition="/etc/dnf/plugins/post-transaction-actions.conf",
                )
            ],
            applies=_dnf,
        )
    )
    return cat


def _check_disabled(disabled: Iterable[str], *catalogs: Catalog) -> None:
    known = set()
    for c in catalogs:
        known.update(c.ids())
    unknown = sorted(set(disabled) - known)
    if unknown:
        raise ValidationError(
            code="config.unknown_setting",
            message="Unknown setting id(s) in disabled_settings: {}".format(", ".join(unknown)),
            data={"setting_ids": unknown},
        )


def build_catalogs(env: SystemEnv, cfg: Optional[Config] = None) -> Tuple[Catalog, Catalog]:
    """
    Build (remediation, monitor) catalogs with the operator's
    `disabled_settings` removed from both.
    """
    cfg = cfg or Config()
    remediation = build_remediation_catalog(env, cfg)
    monitor = build_monitor_catalog(env, cfg)
    _check_disabled(cfg.disabled_settings, remediation, monitor)
    return (
        remediation.without(cfg.disabled_settings, strict=False),
        monitor.without(cfg.disabled_settings, strict=False),
    )
