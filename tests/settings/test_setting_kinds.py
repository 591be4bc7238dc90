import tempfile
import unittest
from pathlib import Path

from freeze_guard.core.errors import ProbeInconclusive, ResourceUnavailable
from freeze_guard.core.setting import EffectiveAfter, ProbeResult, ProbeState, Severity
from freeze_guard.settings.content import BLOCK_BEGIN, BLOCK_END, LEGACY_BLOCK_MARKER
from freeze_guard.settings.kinds import (
    Part,
    block_part,
    combine,
    file_part,
    grub_token_part,
    line_part,
    setting_from_parts,
    unit_mask_part,
)
from freeze_guard.testing import FakeSystemctl, make_env, write


class TestCombine(unittest.TestCase):
    def test_single_part_passes_through(self) -> None:
        r = ProbeResult.drifted("x=1")
        self.assertIs(combine([("a", r)]), r)

    def test_all_satisfied_or_all_absent(self) -> None:
        self.assertEqual(combine([("a", ProbeResult.satisfied()), ("b", ProbeResult.satisfied())]).state, ProbeState.SATISFIED)
        self.assertEqual(combine([("a", ProbeResult.absent()), ("b", ProbeResult.absent())]).state, ProbeState.ABSENT)

    def test_unknown_wins_over_drift(self) -> None:
        r = combine([("a", ProbeResult.drifted("x")), ("b", ProbeResult.unknown("timeout"))])
        self.assertEqual(r.state, ProbeState.UNKNOWN)
        self.assertEqual(r.reason, "b: timeout")

    def test_mixed_is_drifted_with_detail(self) -> None:
        r = combine([("a", ProbeResult.satisfied()), ("b", ProbeResult.absent())])
        self.assertEqual(r.state, ProbeState.DRIFTED)
        self.assertEqual(r.observed, "b: absent")


class TestCompositeSetting(unittest.TestCase):
    def _part(self, name, state, log, fail=False):
        def probe():
            return ProbeResult.satisfied() if state.get(name) else ProbeResult.absent()

        def apply():
            log.append(name)
            if fail:
                raise OSError("disk full")
            state[name] = True

        return Part(name=name, probe=probe, apply=apply)

    def test_apply_stops_at_first_failing_part(self) -> None:
        state, log, hooks = {"one": True}, [], []
        s = setting_from_parts(
            "multi",
            "multi",
            "test",
            Severity.WARNING,
            EffectiveAfter.LIVE,
            [self._part("one", state, log), self._part("two", state, log, fail=True), self._part("three", state, log)],
            after_apply=("hook", lambda: hooks.append(1)),
        )
        res = s.apply()
        self.assertFalse(res.ok)
        self.assertEqual(res.step, "two")
        self.assertEqual(log, ["two"])
        self.assertEqual(hooks, [])
        self.assertIsNone(s.revert)

    def test_hook_runs_only_when_something_changed(self) -> None:
        state, log, hooks = {"one": True}, [], []
        s = setting_from_parts(
            "single",
            "single",
            "test",
            Severity.WARNING,
            EffectiveAfter.LIVE,
            [self._part("one", state, log)],
            after_apply=("hook", lambda: hooks.append(1)),
        )
        self.assertTrue(s.apply().ok)
        self.assertEqual(hooks, [])

    def test_no_resource_present_is_unavailable(self) -> None:
        def missing():
            raise ResourceUnavailable(code="resource.unavailable", message="gone")

        s = setting_from_parts(
            "gone", "gone", "test", Severity.INFO, EffectiveAfter.LIVE, [Part(name="p", probe=missing, apply=lambda: None)]
        )
        with self.assertRaises(ResourceUnavailable):
            s.probe()


class TestFileKinds(unittest.TestCase):
    def test_file_part_lifecycle(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            part = file_part(make_env(root), "/etc/demo/managed.conf", "a=1\n")
            self.assertEqual(part.probe().state, ProbeState.ABSENT)
            part.apply()
            self.assertEqual(part.probe().state, ProbeState.SATISFIED)
            write(root, "etc/demo/managed.conf", "a=2\n")
            self.assertEqual(part.probe().observed, "content differs")
            part.revert()
            self.assertFalse((root / "etc/demo/managed.conf").exists())

    def test_file_part_precondition(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            part = file_part(make_env(Path(td)), "/etc/X11/xorg.conf.d/x.conf", "x\n", precondition="/etc/X11")
            with self.assertRaises(ResourceUnavailable):
                part.probe()

    def test_line_part_appends_to_existing_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            write(root, "etc/dconf/profile/user", "user-db:user")
            part = line_part(make_env(root), "/etc/dconf/profile/user", "system-db:local", "user-db:user\nsystem-db:local\n")
            self.assertEqual(part.probe().state, ProbeState.DRIFTED)
            part.apply()
            self.assertEqual((root / "etc/dconf/profile/user").read_text(), "user-db:user\nsystem-db:local\n")
            self.assertIsNone(part.revert)

    def test_block_part_requires_host_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            part = block_part(make_env(Path(td)), "/etc/gdm3/greeter.dconf-defaults", "k=v\n", begin=BLOCK_BEGIN, end=BLOCK_END)
            with self.assertRaises(ResourceUnavailable):
                part.probe()

    def test_block_part_round_trip_preserves_host_content(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            original = "[section]\nkey=1\n"
            path = write(root, "etc/gdm3/greeter.dconf-defaults", original)
            part = block_part(
                make_env(root),
                "/etc/gdm3/greeter.dconf-defaults",
                "k=v\n",
                begin=BLOCK_BEGIN,
                end=BLOCK_END,
                legacy_marker=LEGACY_BLOCK_MARKER,
            )
            self.assertEqual(part.probe().state, ProbeState.ABSENT)
            part.apply()
            part.apply()
            self.assertEqual(part.probe().state, ProbeState.SATISFIED)
            self.assertEqual(path.read_text().count(BLOCK_BEGIN), 1)

            path.write_text(path.read_text().replace("k=v", "k=other"))
            self.assertEqual(part.probe().observed, "block content differs")

            part.revert()
            self.assertEqual(path.read_text(), original)

    def test_block_part_repairs_unterminated_block_without_losing_lines(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            path = write(root, "etc/gdm3/greeter.dconf-defaults", f"[section]\nkey=1\n{BLOCK_BEGIN}\nuser=2\n")
            part = block_part(make_env(root), "/etc/gdm3/greeter.dconf-defaults", "k=v\n", begin=BLOCK_BEGIN, end=BLOCK_END)
            self.assertEqual(part.probe().state, ProbeState.ABSENT)

            part.apply()
            self.assertEqual(part.probe().state, ProbeState.SATISFIED)
            text = path.read_text()
            self.assertIn("key=1\n", text)
            self.assertIn("user=2\n", text)
            self.assertEqual(text.count(BLOCK_BEGIN), 1)

            part.revert()
            self.assertEqual(path.read_text(), "[section]\nkey=1\nuser=2\n")


class TestSystemAndKernelKinds(unittest.TestCase):
    def test_unit_mask_part(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            systemctl = FakeSystemctl(units={"sleep.target": "static"})
            env = make_env(Path(td), systemctl=systemctl)
            part = unit_mask_part(env, "sleep.target")
            self.assertEqual(part.probe().observed, "state: static")
            part.apply()
            self.assertEqual(part.probe().state, ProbeState.SATISFIED)
            part.revert()
            self.assertEqual(systemctl.units["sleep.target"], "static")
            with self.assertRaises(ResourceUnavailable):
                unit_mask_part(env, "missing.target").probe()

    def test_systemctl_error_is_inconclusive(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            systemctl = FakeSystemctl(units={"sleep.target": "static"}, failures=["is-enabled:sleep.target"])
            part = unit_mask_part(make_env(Path(td), systemctl=systemctl), "sleep.target")
            with self.assertRaises(ProbeInconclusive) as cm:
                part.probe()
            self.assertEqual(cm.exception.data, {"unit": "sleep.target"})

    def test_grub_token_replaces_same_key(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            path = write(root, "etc/default/grub", 'GRUB_TIMEOUT=5\nGRUB_CMDLINE_LINUX_DEFAULT="quiet consoleblank=300"\n')
            part = grub_token_part(make_env(root), "consoleblank=0")
            self.assertEqual(part.probe().observed, "consoleblank=300")
            part.apply()
            self.assertEqual(path.read_text(), 'GRUB_TIMEOUT=5\nGRUB_CMDLINE_LINUX_DEFAULT="quiet consoleblank=0"\n')
            self.assertEqual(part.probe().state, ProbeState.SATISFIED)


if __name__ == "__main__":
    unittest.main()
