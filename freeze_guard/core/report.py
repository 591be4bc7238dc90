from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .setting import ProbeResult, ProbeState, Severity

ACTIONS = ("none", "applied", "apply_failed", "skipped", "reported", "reverted", "revert_failed")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class SettingOutcome:
    setting_id: str
    title: str
    severity: str
    setting_class: str
    effective_after: str
    action: str
    before: Optional[ProbeResult] = None
    after: Optional[ProbeResult] = None
    error: Optional[str] = None

    @property
    def is_risk(self) -> bool:
        return (
            self.before is not None
            and self.before.needs_apply
            and self.severity == Severity.CRITICAL.value
            and self.action in ("reported", "apply_failed")
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "setting_id": self.setting_id,
            "title": self.title,
            "severity": self.severity,
            "setting_class": self.setting_class,
            "effective_after": self.effective_after,
            "action": self.action,
            "before_state": self.before.to_dict() if self.before is not None else None,
            "after_state": self.after.to_dict() if self.after is not None else None,
        }
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class RunReport:
    """
    Per-run outcome table. Created fresh for every run and never persisted by
    the reconciler itself; counts are exact tallies over `entries`.
    """

    run_id: str
    mode: str
    host: Dict[str, Any]
    timestamp: str = field(default_factory=utc_now)
    entries: List[SettingOutcome] = field(default_factory=list)

    def add(self, outcome: SettingOutcome) -> None:
        self.entries.append(outcome)

    def get(self, setting_id: str) -> Optional[SettingOutcome]:
        for e in self.entries:
            if e.setting_id == setting_id:
                return e
        return None

    @property
    def counts(self) -> Dict[str, int]:
        c = {
            "satisfied": 0,
            "applied": 0,
            "failed": 0,
            "skipped": 0,
            "drifted": 0,
            "absent": 0,
            "unknown": 0,
            "reverted": 0,
        }
        for e in self.entries:
            if e.action == "skipped":
                c["skipped"] += 1
            elif e.action == "applied":
                c["applied"] += 1
            elif e.action in ("apply_failed", "revert_failed"):
                c["failed"] += 1
            elif e.action == "reverted":
                c["reverted"] += 1
            elif e.before is not None:
                if e.before.state == ProbeState.SATISFIED:
                    c["satisfied"] += 1
                elif e.before.state == ProbeState.DRIFTED:
                    c["drifted"] += 1
                elif e.before.state == ProbeState.ABSENT:
                    c["absent"] += 1
                else:
                    c["unknown"] += 1
        return c

    @property
    def risks(self) -> List[SettingOutcome]:
        return [e for e in self.entries if e.is_risk]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "mode": self.mode,
            "timestamp": self.timestamp,
            "host": self.host,
            "per_setting": [e.to_dict() for e in self.entries],
            "counts": self.counts,
        }
