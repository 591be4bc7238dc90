from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

if TYPE_CHECKING:
    from .host_context import HostContext


class ProbeState(str, Enum):
    SATISFIED = "satisfied"
    DRIFTED = "drifted"
    ABSENT = "absent"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class EffectiveAfter(str, Enum):
    LIVE = "live"
    SERVICE_RESTART = "service-restart"
    REBOOT = "reboot"


@dataclass(frozen=True)
class ProbeResult:
    state: ProbeState
    observed: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def satisfied(cls) -> "ProbeResult":
        return cls(ProbeState.SATISFIED)

    @classmethod
    def drifted(cls, observed: str) -> "ProbeResult":
        return cls(ProbeState.DRIFTED, observed=observed)

    @classmethod
    def absent(cls) -> "ProbeResult":
        return cls(ProbeState.ABSENT)

    @classmethod
    def unknown(cls, reason: str) -> "ProbeResult":
        return cls(ProbeState.UNKNOWN, reason=reason)

    @property
    def needs_apply(self) -> bool:
        return self.state in (ProbeState.DRIFTED, ProbeState.ABSENT)

    def describe(self) -> str:
        if self.state == ProbeState.DRIFTED and self.observed:
            return f"drifted ({self.observed})"
        if self.state == ProbeState.UNKNOWN and self.reason:
            return f"unknown ({self.reason})"
        return self.state.value

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"state": self.state.value}
        if self.observed is not None:
            out["observed"] = self.observed
        if self.reason is not None:
            out["reason"] = self.reason
        return out


@dataclass(frozen=True)
class ApplyResult:
    ok: bool
    reason: Optional[str] = None
    step: Optional[str] = None

    @classmethod
    def applied(cls) -> "ApplyResult":
        return cls(ok=True)

    @classmethod
    def failed(cls, reason: str, step: Optional[str] = None) -> "ApplyResult":
        return cls(ok=False, reason=reason, step=step)

    def describe(self) -> str:
        if self.ok:
            return "applied"
        if self.step:
            return f"{self.step}: {self.reason}"
        return self.reason or "failed"


def always(_host: "HostContext") -> bool:
    return True


@dataclass(frozen=True)
class Setting:
    """
    Declarative unit of reconciliation: one logical OS resource, its probe,
    and an idempotent apply.

    Invariants:
    - probe() never writes.
    - apply() is safe in any prior state; apply() then probe() is satisfied
      (for non-live effective_after, the persisted config is what converges).
    - no setting's apply() changes another setting's probe().
    """

    setting_id: str
    title: str
    setting_class: str
    severity: Severity
    effective_after: EffectiveAfter
    probe: Callable[[], ProbeResult]
    apply: Callable[[], ApplyResult]
    applies: Callable[["HostContext"], bool] = always
    revert: Optional[Callable[[], ApplyResult]] = None
    resources: Tuple[str, ...] = ()

    def describe(self) -> Dict[str, Any]:
        return {
            "setting_id": self.setting_id,
            "title": self.title,
            "setting_class": self.setting_class,
            "severity": self.severity.value,
            "effective_after": self.effective_after.value,
            "revertible": self.revert is not None,
            "resources": list(self.resources),
        }
