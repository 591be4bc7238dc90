from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional

from .errors import ApplyFailed, ProbeInconclusive, ResourceUnavailable
from .host_context import HostContext
from .report import RunReport, SettingOutcome
from .setting import ApplyResult, EffectiveAfter, ProbeResult, ProbeState, Setting

if TYPE_CHECKING:
    from freeze_guard.trace.trace_emitter import TraceEmitter


class Mode(str, Enum):
    CHECK_ONLY = "check_only"
    REPAIR = "repair"
    REVERT = "revert"


def _outcome(setting: Setting, action: str, **kw: Any) -> SettingOutcome:
    return SettingOutcome(
        setting_id=setting.setting_id,
        title=setting.title,
        severity=setting.severity.value,
        setting_class=setting.setting_class,
        effective_after=setting.effective_after.value,
        action=action,
        **kw,
    )


class Reconciler:
    """
    Drives settings toward their desired state.

    Hard rules:
    - check_only never calls apply().
    - settings run sequentially in catalog order; one setting's failure is
      recorded and never halts the run.
    - a subsystem missing on this host (ResourceUnavailable) is skipped, not failed.
    """

    def __init__(self, trace: Optional["TraceEmitter"] = None):
        self._trace = trace

    def _emit(self, event_type: str, **kw: Any) -> None:
        if self._trace is not None:
            self._trace.emit(event_type, **kw)

    def _probe(self, setting: Setting) -> ProbeResult:
        # ResourceUnavailable propagates; everything else becomes a caveat.
        try:
            return setting.probe()
        except ResourceUnavailable:
            raise
        except ProbeInconclusive as e:
            return ProbeResult.unknown(e.message)
        except PermissionError:
            return ProbeResult.unknown("permission denied")
        except TimeoutError:
            return ProbeResult.unknown("timeout")
        except Exception as e:  # noqa: BLE001
            self._emit("error", setting_id=setting.setting_id, message="probe raised", data={"error": repr(e)})
            return ProbeResult.unknown(f"probe error: {e}")

    def _skip(self, report: RunReport, setting: Setting, reason: str) -> None:
        self._emit("setting_skipped", setting_id=setting.setting_id, message=reason)
        report.add(_outcome(setting, "skipped", error=None))

    def run(self, catalog: Iterable[Setting], host: HostContext, mode: Mode) -> RunReport:
        if mode == Mode.REVERT:
            return self.revert(catalog, host)

        report = RunReport(
            run_id=self._trace.run_id if self._trace is not None else "",
            mode=mode.value,
            host=host.to_dict(),
        )
        self._emit("run_started", mode=mode.value, data={"host": report.host})

        for setting in catalog:
            try:
                applicable = setting.applies(host)
            except Exception as e:  # noqa: BLE001
                self._emit("error", setting_id=setting.setting_id, message="applicability check raised", data={"error": repr(e)})
                applicable = False
            if not applicable:
                self._skip(report, setting, "not applicable to this host")
                continue

            try:
                before = self._probe(setting)
            except ResourceUnavailable as e:
                self._skip(report, setting, e.message)
                continue
            self._emit("setting_probed", setting_id=setting.setting_id, data=before.to_dict())

            if before.state == ProbeState.SATISFIED:
                report.add(_outcome(setting, "none", before=before, after=before))
                continue
            if before.state == ProbeState.UNKNOWN or mode == Mode.CHECK_ONLY:
                report.add(_outcome(setting, "reported", before=before))
                continue

            report.add(self._apply(setting, before))

        self._emit("run_finished", mode=mode.value, data={"counts": report.counts})
        return report

    def _apply(self, setting: Setting, before: ProbeResult) -> SettingOutcome:
        self._emit("apply_started", setting_id=setting.setting_id, data=before.to_dict())
        try:
            res = setting.apply()
        except ResourceUnavailable as e:
            self._emit("setting_skipped", setting_id=setting.setting_id, message=e.message)
            return _outcome(setting, "skipped", before=before)
        except ApplyFailed as e:
            res = ApplyResult.failed(e.message, step=(e.data or {}).get("step"))
        except Exception as e:  # noqa: BLE001
            self._emit("error", setting_id=setting.setting_id, message="apply raised", data={"error": repr(e)})
            res = ApplyResult.failed(str(e) or repr(e))

        if not res.ok:
            self._emit("apply_finished", setting_id=setting.setting_id, data={"ok": False, "error": res.describe()})
            return _outcome(setting, "apply_failed", before=before, error=res.describe())

        try:
            after = self._probe(setting)
        except ResourceUnavailable as e:
            after = ProbeResult.unknown(e.message)

        if after.state != ProbeState.SATISFIED and setting.effective_after == EffectiveAfter.LIVE:
            error = f"did not converge: {after.describe()}"
            self._emit("apply_finished", setting_id=setting.setting_id, data={"ok": False, "error": error})
            return _outcome(setting, "apply_failed", before=before, after=after, error=error)

        self._emit("apply_finished", setting_id=setting.setting_id, data={"ok": True, "after": after.to_dict()})
        return _outcome(setting, "applied", before=before, after=after)

    def revert(
        self,
        catalog: Iterable[Setting],
        host: HostContext,
        *,
        exclude_classes: Iterable[str] = (),
    ) -> RunReport:
        """
        Undo what apply() wrote. Applicability is ignored: whatever was
        written on a previous host configuration is removed too.
        """
        excluded = set(exclude_classes)
        report = RunReport(
            run_id=self._trace.run_id if self._trace is not None else "",
            mode=Mode.REVERT.value,
            host=host.to_dict(),
        )
        self._emit("run_started", mode=Mode.REVERT.value, data={"host": report.host, "exclude_classes": sorted(excluded)})

        for setting in catalog:
            if setting.setting_class in excluded:
                self._skip(report, setting, f"class {setting.setting_class} kept")
                continue
            if setting.revert is None:
                self._skip(report, setting, "nothing to revert")
                continue

            self._emit("apply_started", setting_id=setting.setting_id, mode=Mode.REVERT.value)
            try:
                res = setting.revert()
            except ResourceUnavailable as e:
                self._skip(report, setting, e.message)
                continue
            except Exception as e:  # noqa: BLE001
                self._emit("error", setting_id=setting.setting_id, message="revert raised", data={"error": repr(e)})
                res = ApplyResult.failed(str(e) or repr(e))

            if res.ok:
                self._emit("apply_finished", setting_id=setting.setting_id, mode=Mode.REVERT.value, data={"ok": True})
                report.add(_outcome(setting, "reverted"))
            else:
                self._emit(
                    "apply_finished",
                    setting_id=setting.setting_id,
                    mode=Mode.REVERT.value,
                    data={"ok": False, "error": res.describe()},
                )
                report.add(_outcome(setting, "revert_failed", error=res.describe()))

        self._emit("run_finished", mode=Mode.REVERT.value, data={"counts": report.counts})
        return report


def exit_code(report: RunReport) -> int:
    """
    Map a run to the process exit status:
    0 ok, 2 critical drift found by check_only, 3 partial failure, 4 total failure.
    """
    c: Dict[str, int] = report.counts
    if report.mode == Mode.CHECK_ONLY.value:
        return 2 if report.risks else 0
    attempted = c["applied"] + c["failed"] + (c["reverted"] if report.mode == Mode.REVERT.value else 0)
    if c["failed"] == 0:
        return 0
    if c["failed"] == attempted:
        return 4
    return 3
