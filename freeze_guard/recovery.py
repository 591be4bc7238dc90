from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from freeze_guard.trace.trace_emitter import TraceEmitter
from tools.systemd import SystemctlError

CANDIDATES = ("gdm3", "gdm", "sddm", "lightdm")
FALLBACK = ("lxdm", "xdm", "ly", "greetd")

DISPLAY_NAMES = {"gdm3": "GDM", "gdm": "GDM", "sddm": "SDDM", "lightdm": "LightDM", "lxdm": "LXDM", "xdm": "XDM"}


class RecoveryState(str, Enum):
    DETECTING = "detecting"
    CONFIRMED = "confirmed"
    AWAITING_CONSENT = "awaiting_consent"
    RESTARTING = "restarting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailureReason(str, Enum):
    NO_CANDIDATE_FOUND = "no_candidate_found"
    CONSENT_REQUIRED = "consent_required"
    CONSENT_DECLINED = "consent_declined"
    RESTART_ERROR = "restart_error"


@dataclass(frozen=True)
class RecoveryOutcome:
    state: RecoveryState
    service: Optional[str] = None
    reason: Optional[FailureReason] = None
    message: str = ""
    history: Tuple[RecoveryState, ...] = ()

    @property
    def ok(self) -> bool:
        return self.state == RecoveryState.SUCCEEDED


def display_name(service: str) -> str:
    return DISPLAY_NAMES.get(service, service)


@dataclass
class RecoveryController:
    """
    Restart the display manager of a hung graphical session.

    detecting -> confirmed(service) -> awaiting_consent -> restarting
    -> succeeded | failed. Restarting closes every GUI application, so a
    restart never happens without an explicit yes from `confirm`.
    """

    systemctl: Any
    confirm: Optional[Callable[[str], bool]] = None
    trace: Optional[TraceEmitter] = None
    _history: List[RecoveryState] = field(default_factory=list)

    def _enter(self, state: RecoveryState, **data: Any) -> None:
        prev = self._history[-1].value if self._history else None
        self._history.append(state)
        if self.trace is not None:
            payload = {"from": prev, "to": state.value}
            payload.update({k: v for k, v in data.items() if v is not None})
            self.trace.emit("recovery_transition", message=state.value, data=payload)

    def _fail(self, reason: FailureReason, message: str, service: Optional[str] = None) -> RecoveryOutcome:
        self._enter(RecoveryState.FAILED, reason=reason.value, service=service)
        return RecoveryOutcome(
            state=RecoveryState.FAILED,
            service=service,
            reason=reason,
            message=message,
            history=tuple(self._history),
        )

    def _is_active(self, unit: str) -> bool:
        try:
            return bool(self.systemctl.is_active(unit))
        except (OSError, TimeoutError, SystemctlError):
            return False

    def detect(self) -> Optional[str]:
        for name in CANDIDATES:
            if self._is_active(name):
                return name
        try:
            active = self.systemctl.list_active_services()
        except (OSError, TimeoutError, SystemctlError):
            return None
        names = {u[: -len(".service")] for u in active if u.endswith(".service")}
        for name in CANDIDATES + FALLBACK:
            if name in names:
                return name
        return None

    def run(self) -> RecoveryOutcome:
        self._history = []
        self._enter(RecoveryState.DETECTING)
        service = self.detect()
        if service is None:
            tried = ", ".join(f"sudo systemctl restart {n}" for n in CANDIDATES)
            return self._fail(
                FailureReason.NO_CANDIDATE_FOUND,
                f"Could not detect your display manager. Try one of: {tried}",
            )

        self._enter(RecoveryState.CONFIRMED, service=service)
        self._enter(RecoveryState.AWAITING_CONSENT, service=service)
        name = display_name(service)
        if self.confirm is None:
            return self._fail(
                FailureReason.CONSENT_REQUIRED,
                f"Restarting {name} closes all GUI applications; run interactively to confirm.",
                service,
            )
        if not self.confirm(f"Restart {name} now? This will close GUI apps."):
            return self._fail(FailureReason.CONSENT_DECLINED, "Aborted.", service)

        self._enter(RecoveryState.RESTARTING, service=service)
        try:
            self.systemctl.restart(service)
        except (OSError, TimeoutError, SystemctlError) as e:
            return self._fail(
                FailureReason.RESTART_ERROR,
                f"Failed to restart {name}: {e}. You may need to reboot: sudo reboot",
                service,
            )

        self._enter(RecoveryState.SUCCEEDED, service=service)
        return RecoveryOutcome(
            state=RecoveryState.SUCCEEDED,
            service=service,
            message=(
                f"{name} restarted. Press Ctrl+Alt+F1 or Ctrl+Alt+F2 to return to the login screen. "
                "Run `sudo freeze-guard fix` to prevent this from happening again."
            ),
            history=tuple(self._history),
        )
