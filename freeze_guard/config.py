from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .contract_store import ContractStore
from .core.errors import ValidationError

CONFIG_ENV = "FREEZE_GUARD_CONFIG"
DEFAULT_CONFIG_PATH = Path("/etc/freeze-guard/config.yml")


@dataclass(frozen=True)
class NotifyConfig:
    enabled: bool = True
    urgency: str = "critical"
    title: str = "Freeze Guard"


@dataclass(frozen=True)
class SyslogConfig:
    enabled: bool = True
    ident: str = "freeze-guard"


@dataclass(frozen=True)
class MonitorConfig:
    exec_start: Optional[str] = None
    on_boot_sec: str = "2min"
    interval: str = "6h"


@dataclass(frozen=True)
class Config:
    """
    Operator configuration. Every key is optional; a missing file means
    defaults throughout.
    """

    trace_path: Path = Path("/var/log/freeze-guard/trace.jsonl")
    lock_path: Path = Path("/run/freeze-guard.lock")
    lock_timeout: float = 30.0
    command_timeout: float = 20.0
    disabled_settings: Tuple[str, ...] = ()
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    syslog: SyslogConfig = field(default_factory=SyslogConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    restore_suspend: bool = False
    source: Optional[Path] = None


def default_config_path() -> Path:
    raw = os.environ.get(CONFIG_ENV)
    return Path(raw) if raw else DEFAULT_CONFIG_PATH


def config_from_dict(raw: Dict[str, Any], *, source: Optional[Path] = None) -> Config:
    store = ContractStore()
    errors = store.validate("config.schema.json", raw)
    if errors:
        raise ValidationError(
            code="config.invalid",
            message="Config failed validation: {}".format(source or "<inline>"),
            data={"errors": errors},
        )

    base = Config()
    notify = raw.get("notify", {})
    syslog = raw.get("syslog", {})
    monitor = raw.get("monitor", {})
    uninstall = raw.get("uninstall", {})
    return Config(
        trace_path=Path(raw["trace_path"]) if "trace_path" in raw else base.trace_path,
        lock_path=Path(raw["lock_path"]) if "lock_path" in raw else base.lock_path,
        lock_timeout=float(raw.get("lock_timeout", base.lock_timeout)),
        command_timeout=float(raw.get("command_timeout", base.command_timeout)),
        disabled_settings=tuple(raw.get("disabled_settings", ())),
        notify=NotifyConfig(
            enabled=bool(notify.get("enabled", base.notify.enabled)),
            urgency=str(notify.get("urgency", base.notify.urgency)),
            title=str(notify.get("title", base.notify.title)),
        ),
        syslog=SyslogConfig(
            enabled=bool(syslog.get("enabled", base.syslog.enabled)),
            ident=str(syslog.get("ident", base.syslog.ident)),
        ),
        monitor=MonitorConfig(
            exec_start=monitor.get("exec_start"),
            on_boot_sec=str(monitor.get("on_boot_sec", base.monitor.on_boot_sec)),
            interval=str(monitor.get("interval", base.monitor.interval)),
        ),
        restore_suspend=bool(uninstall.get("restore_suspend", False)),
        source=source,
    )


def load_config(path: Optional[Path] = None) -> Config:
    """
    Load and validate the YAML config.

    An explicitly given path must exist; the default location is optional.
    """
    explicit = path is not None
    if path is None:
        path = default_config_path()

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        if explicit:
            raise ValidationError(code="config.not_found", message=f"Config file not found: {path}", data={"path": str(path)})
        return Config()

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValidationError(code="config.parse_error", message=f"Invalid YAML in {path}", data={"error": str(e)})

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError(code="config.invalid", message=f"Config root must be a mapping: {path}")
    return config_from_dict(raw, source=path)
