import json
import tempfile
import unittest
from pathlib import Path

from freeze_guard.recovery import FailureReason, RecoveryController, RecoveryState
from freeze_guard.testing import FakeSystemctl
from freeze_guard.trace.trace_emitter import TraceEmitter
from freeze_guard.trace.trace_store_jsonl import TraceStoreJSONL


class TestRecoveryController(unittest.TestCase):
    def test_restart_after_consent(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            trace_path = Path(td) / "trace.jsonl"
            systemctl = FakeSystemctl(active=["gdm3"])
            prompts = []
            ctl = RecoveryController(
                systemctl,
                confirm=lambda text: prompts.append(text) or True,
                trace=TraceEmitter(TraceStoreJSONL(trace_path), "run_r1"),
            )
            out = ctl.run()

            self.assertTrue(out.ok)
            self.assertEqual(out.service, "gdm3")
            self.assertEqual(prompts, ["Restart GDM now? This will close GUI apps."])
            self.assertIn(["restart", "gdm3"], systemctl.calls)
            self.assertEqual(
                out.history,
                (
                    RecoveryState.DETECTING,
                    RecoveryState.CONFIRMED,
                    RecoveryState.AWAITING_CONSENT,
                    RecoveryState.RESTARTING,
                    RecoveryState.SUCCEEDED,
                ),
            )
            events = [json.loads(l) for l in trace_path.read_text(encoding="utf-8").splitlines()]
            self.assertEqual([e["data"]["to"] for e in events], [s.value for s in out.history])

    def test_no_display_manager(self) -> None:
        systemctl = FakeSystemctl(active=["cron"])
        out = RecoveryController(systemctl, confirm=lambda text: True).run()
        self.assertNotIn("restart", [c[0] for c in systemctl.calls])
        self.assertEqual(out.history, (RecoveryState.DETECTING, RecoveryState.FAILED))
        self.assertEqual(out.state, RecoveryState.FAILED)
        self.assertEqual(out.reason, FailureReason.NO_CANDIDATE_FOUND)
        self.assertIn("sudo systemctl restart gdm3", out.message)

    def test_never_restarts_without_a_prompt(self) -> None:
        systemctl = FakeSystemctl(active=["sddm"])
        out = RecoveryController(systemctl).run()
        self.assertEqual(out.reason, FailureReason.CONSENT_REQUIRED)
        self.assertNotIn("restart", [c[0] for c in systemctl.calls])

    def test_declined(self) -> None:
        systemctl = FakeSystemctl(active=["lightdm"])
        out = RecoveryController(systemctl, confirm=lambda text: False).run()
        self.assertEqual(out.reason, FailureReason.CONSENT_DECLINED)
        self.assertEqual(out.message, "Aborted.")
        self.assertNotIn(RecoveryState.RESTARTING, out.history)

    def test_restart_error(self) -> None:
        systemctl = FakeSystemctl(active=["gdm"], failures=["restart:gdm"])
        out = RecoveryController(systemctl, confirm=lambda text: True).run()
        self.assertEqual(out.reason, FailureReason.RESTART_ERROR)
        self.assertIn("sudo reboot", out.message)
        self.assertEqual(out.history[-2:], (RecoveryState.RESTARTING, RecoveryState.FAILED))

    def test_fallback_scan_of_active_services(self) -> None:
        systemctl = FakeSystemctl(active=["lxdm", "cron"])
        ctl = RecoveryController(systemctl, confirm=lambda text: True)
        self.assertEqual(ctl.detect(), "lxdm")
        self.assertTrue(ctl.run().ok)


if __name__ == "__main__":
    unittest.main()
