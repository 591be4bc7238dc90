from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from freeze_guard.config import NotifyConfig
from freeze_guard.core.host_context import HostContext
from freeze_guard.core.reconciler import Mode, Reconciler
from freeze_guard.core.report import RunReport
from freeze_guard.core.run_lock import RunLock
from freeze_guard.registry.catalog import Catalog
from freeze_guard.trace.trace_emitter import TraceEmitter

Notifier = Callable[[Dict[str, Any], bool], Dict[str, Any]]

INTACT_MESSAGE = "All settings are intact. No regressions detected."


@dataclass(frozen=True)
class DriftAlert:
    severity: str
    message: str
    detail: Dict[str, Any]


@dataclass(frozen=True)
class MonitorResult:
    report: RunReport
    alert: Optional[DriftAlert] = None


def drift_message(applied: int) -> str:
    noun = "setting was" if applied == 1 else "settings were"
    return f"{applied} {noun} reverted and re-applied"


class DriftMonitor:
    """
    Periodic / hook-triggered repair run.

    Runs the remediation catalog in repair mode under the run lock; when
    anything had to be re-applied, the alert goes to the trace (and syslog
    through the emitter) and to logged-in users as a desktop notification.
    Notification is best effort and never changes the run outcome.
    """

    def __init__(
        self,
        catalog: Catalog,
        trace: TraceEmitter,
        *,
        lock: Optional[RunLock] = None,
        notifier: Optional[Notifier] = None,
        notify: NotifyConfig = NotifyConfig(),
    ):
        self._catalog = catalog
        self._trace = trace
        self._lock = lock
        self._notifier = notifier
        self._notify = notify

    def run(self, host: HostContext) -> MonitorResult:
        if self._lock is not None:
            with self._lock:
                return self._run(host)
        return self._run(host)

    def _run(self, host: HostContext) -> MonitorResult:
        report = Reconciler(self._trace).run(self._catalog, host, Mode.REPAIR)
        counts = report.counts
        applied = [e.setting_id for e in report.entries if e.action == "applied"]
        failed = [e.setting_id for e in report.entries if e.action == "apply_failed"]

        if not applied:
            self._trace.emit(
                "drift_checked",
                mode=Mode.REPAIR.value,
                severity="info",
                message=INTACT_MESSAGE if not failed else "No settings were re-applied",
                data={"counts": counts, "failed": failed},
            )
            return MonitorResult(report=report)

        message = drift_message(len(applied))
        alert = DriftAlert(severity="warning", message=message, detail=report.to_dict())
        self._trace.emit(
            "drift_repaired",
            mode=Mode.REPAIR.value,
            severity=alert.severity,
            message=message,
            data={"applied": applied, "failed": failed, "report": alert.detail},
        )
        self._send_notification(len(applied))
        return MonitorResult(report=report, alert=alert)

    def _send_notification(self, applied: int) -> None:
        if self._notifier is None or not self._notify.enabled:
            return
        args = {
            "title": self._notify.title,
            "message": f"Your power settings were reverted, likely by a package update. "
            f"{applied} fix(es) have been re-applied automatically.",
            "urgency": self._notify.urgency,
        }
        try:
            res = self._notifier(args, False)
        except (OSError, ValueError, TimeoutError) as e:
            self._trace.emit("notify_failed", severity="warning", message="Desktop notification failed", data={"error": repr(e)})
            return
        errors = res.get("errors") or []
        if errors:
            self._trace.emit(
                "notify_failed",
                severity="warning",
                message="Desktop notification failed for some users",
                data={"errors": errors, "sent": res.get("sent", [])},
            )
