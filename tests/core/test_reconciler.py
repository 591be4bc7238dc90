import json
import tempfile
import unittest
from pathlib import Path

from freeze_guard.core.errors import ApplyFailed, ProbeInconclusive, ResourceUnavailable
from freeze_guard.core.host_context import HostContext
from freeze_guard.core.reconciler import Mode, Reconciler, exit_code
from freeze_guard.core.setting import ApplyResult, EffectiveAfter, ProbeResult, Setting, Severity
from freeze_guard.trace.trace_emitter import TraceEmitter
from freeze_guard.trace.trace_store_jsonl import TraceStoreJSONL


def _setting(setting_id, state, *, severity=Severity.CRITICAL, effective_after=EffectiveAfter.LIVE, apply=None, applies=None, setting_class="test", revert=None):
    def probe():
        v = state.get(setting_id)
        if v is None:
            return ProbeResult.absent()
        if v == "good":
            return ProbeResult.satisfied()
        return ProbeResult.drifted(v)

    def default_apply():
        state[setting_id] = "good"
        return ApplyResult.applied()

    kw = {}
    if applies is not None:
        kw["applies"] = applies
    return Setting(
        setting_id=setting_id,
        title=setting_id,
        setting_class=setting_class,
        severity=severity,
        effective_after=effective_after,
        probe=probe,
        apply=apply or default_apply,
        revert=revert,
        **kw,
    )


class TestReconciler(unittest.TestCase):
    def test_check_only_never_applies(self) -> None:
        state = {"a": "bad"}
        calls = []

        def apply():
            calls.append("a")
            return ApplyResult.applied()

        report = Reconciler().run([_setting("a", state, apply=apply)], HostContext.empty(), Mode.CHECK_ONLY)
        self.assertEqual(calls, [])
        self.assertEqual(report.get("a").action, "reported")
        self.assertEqual(report.counts["drifted"], 1)
        self.assertEqual(exit_code(report), 2)

    def test_check_only_warning_only_exits_zero(self) -> None:
        state = {}
        report = Reconciler().run([_setting("a", state, severity=Severity.WARNING)], HostContext.empty(), Mode.CHECK_ONLY)
        self.assertEqual(report.counts["absent"], 1)
        self.assertEqual(exit_code(report), 0)

    def test_repair_applies_and_converges(self) -> None:
        state = {"a": "bad", "b": "good"}
        settings = [_setting("a", state), _setting("b", state), _setting("c", state)]
        report = Reconciler().run(settings, HostContext.empty(), Mode.REPAIR)
        self.assertEqual(report.get("a").action, "applied")
        self.assertEqual(report.get("b").action, "none")
        self.assertEqual(report.get("c").action, "applied")
        self.assertEqual(report.counts["applied"], 2)
        self.assertEqual(report.counts["satisfied"], 1)
        self.assertEqual(exit_code(report), 0)

        again = Reconciler().run(settings, HostContext.empty(), Mode.REPAIR)
        self.assertEqual(again.counts["applied"], 0)
        self.assertEqual(again.counts["satisfied"], 3)

    def test_failure_does_not_halt_run(self) -> None:
        state = {"a": "bad", "b": "bad"}

        def boom():
            raise OSError("read-only file system")

        settings = [_setting("a", state, apply=boom), _setting("b", state)]
        report = Reconciler().run(settings, HostContext.empty(), Mode.REPAIR)
        self.assertEqual(report.get("a").action, "apply_failed")
        self.assertIn("read-only", report.get("a").error)
        self.assertEqual(report.get("b").action, "applied")
        self.assertEqual(exit_code(report), 3)

    def test_every_apply_failing_is_total_failure(self) -> None:
        state = {"a": "bad"}
        settings = [_setting("a", state, apply=lambda: ApplyResult.failed("denied", step="write"))]
        report = Reconciler().run(settings, HostContext.empty(), Mode.REPAIR)
        self.assertEqual(report.get("a").error, "write: denied")
        self.assertEqual(exit_code(report), 4)

    def test_unavailable_resource_is_skipped_not_failed(self) -> None:
        def probe():
            raise ResourceUnavailable(code="resource.unavailable", message="no /etc/X11")

        s = Setting(
            setting_id="x",
            title="x",
            setting_class="test",
            severity=Severity.CRITICAL,
            effective_after=EffectiveAfter.LIVE,
            probe=probe,
            apply=lambda: ApplyResult.applied(),
        )
        report = Reconciler().run([s], HostContext.empty(), Mode.REPAIR)
        self.assertEqual(report.get("x").action, "skipped")
        self.assertEqual(report.counts["failed"], 0)
        self.assertEqual(exit_code(report), 0)

    def test_not_applicable_is_skipped(self) -> None:
        state = {"a": "bad"}
        s = _setting("a", state, applies=lambda h: h.has_gpu("nvidia"))
        report = Reconciler().run([s], HostContext.empty(), Mode.REPAIR)
        self.assertEqual(report.get("a").action, "skipped")
        self.assertEqual(state["a"], "bad")

    def test_permission_error_read_is_unknown_and_not_applied(self) -> None:
        def probe():
            raise PermissionError("denied")

        calls = []
        s = Setting(
            setting_id="p",
            title="p",
            setting_class="test",
            severity=Severity.CRITICAL,
            effective_after=EffectiveAfter.LIVE,
            probe=probe,
            apply=lambda: calls.append(1) or ApplyResult.applied(),
        )
        report = Reconciler().run([s], HostContext.empty(), Mode.REPAIR)
        entry = report.get("p")
        self.assertEqual(entry.action, "reported")
        self.assertEqual(entry.before.reason, "permission denied")
        self.assertEqual(calls, [])
        self.assertEqual(report.counts["unknown"], 1)

    def test_inconclusive_read_is_unknown(self) -> None:
        def probe():
            raise ProbeInconclusive(code="probe.inconclusive", message="systemctl is-enabled timed out")

        s = Setting(
            setting_id="u",
            title="u",
            setting_class="test",
            severity=Severity.CRITICAL,
            effective_after=EffectiveAfter.LIVE,
            probe=probe,
            apply=lambda: ApplyResult.applied(),
        )
        entry = Reconciler().run([s], HostContext.empty(), Mode.REPAIR).get("u")
        self.assertEqual(entry.action, "reported")
        self.assertEqual(entry.before.reason, "systemctl is-enabled timed out")

    def test_apply_failed_carries_step(self) -> None:
        state = {"a": "bad"}

        def apply():
            raise ApplyFailed(code="apply.failed", message="read-only", data={"step": "write"})

        report = Reconciler().run([_setting("a", state, apply=apply)], HostContext.empty(), Mode.REPAIR)
        self.assertEqual(report.get("a").error, "write: read-only")

    def test_live_setting_that_does_not_converge_fails(self) -> None:
        state = {"a": "bad"}
        s = _setting("a", state, apply=lambda: ApplyResult.applied())
        report = Reconciler().run([s], HostContext.empty(), Mode.REPAIR)
        self.assertEqual(report.get("a").action, "apply_failed")
        self.assertIn("did not converge", report.get("a").error)

    def test_reboot_setting_that_does_not_converge_is_applied(self) -> None:
        state = {"a": "bad"}
        s = _setting("a", state, effective_after=EffectiveAfter.REBOOT, apply=lambda: ApplyResult.applied())
        report = Reconciler().run([s], HostContext.empty(), Mode.REPAIR)
        self.assertEqual(report.get("a").action, "applied")

    def test_revert_excludes_classes_and_skips_irreversible(self) -> None:
        state = {"keep": "good", "drop": "good", "fixed": "good"}

        def undo(sid):
            def revert():
                state.pop(sid)
                return ApplyResult.applied()

            return revert

        settings = [
            _setting("keep", state, setting_class="suspend-deny", revert=undo("keep")),
            _setting("drop", state, setting_class="session-idle", revert=undo("drop")),
            _setting("fixed", state, setting_class="session-idle"),
        ]
        report = Reconciler().revert(settings, HostContext.empty(), exclude_classes=("suspend-deny",))
        self.assertEqual(report.mode, "revert")
        self.assertEqual(report.get("keep").action, "skipped")
        self.assertEqual(report.get("drop").action, "reverted")
        self.assertEqual(report.get("fixed").action, "skipped")
        self.assertEqual(sorted(state), ["fixed", "keep"])
        self.assertEqual(exit_code(report), 0)

    def test_every_step_is_traced(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            trace_path = Path(td) / "trace.jsonl"
            trace = TraceEmitter(TraceStoreJSONL(trace_path), "run_rec_1")
            state = {"a": "bad"}
            Reconciler(trace).run([_setting("a", state)], HostContext.empty(), Mode.REPAIR)

            events = [json.loads(l) for l in trace_path.read_text(encoding="utf-8").splitlines() if l.strip()]
            types = [e["event_type"] for e in events]
            self.assertEqual(types[0], "run_started")
            self.assertEqual(types[-1], "run_finished")
            for t in ("setting_probed", "apply_started", "apply_finished"):
                self.assertIn(t, types)
            self.assertTrue(all(e["run_id"] == "run_rec_1" for e in events))


if __name__ == "__main__":
    unittest.main()
