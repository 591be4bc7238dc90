import unittest
from pathlib import Path

from tools.proc.run import CommandResult
from tools.systemd import Systemctl, SystemctlError


class ScriptedRunner:
    def __init__(self, replies=None):
        self.replies = replies or {}
        self.calls = []

    def __call__(self, argv, *, timeout):
        self.calls.append(argv)
        verb = next(a for a in argv[1:] if not a.startswith("--"))
        rc, out, err = self.replies.get(verb, (0, "", ""))
        return CommandResult(argv=tuple(argv), returncode=rc, stdout=out, stderr=err)


class TestSystemctl(unittest.TestCase):
    def test_is_enabled_states(self) -> None:
        runner = ScriptedRunner({"is-enabled": (1, "masked\n", "")})
        self.assertEqual(Systemctl(runner).is_enabled("sleep.target"), "masked")

        runner = ScriptedRunner({"is-enabled": (1, "", "Failed to get unit file state for x.service: No such file or directory")})
        self.assertEqual(Systemctl(runner).is_enabled("x.service"), "not-found")

        runner = ScriptedRunner({"is-enabled": (1, "", "Access denied")})
        with self.assertRaises(SystemctlError):
            Systemctl(runner).is_enabled("x.service")

    def test_alternate_root(self) -> None:
        runner = ScriptedRunner()
        sc = Systemctl(runner, root=Path("/mnt/img"))
        self.assertTrue(sc.offline)
        sc.mask("suspend.target")
        sc.enable("freeze-guard-check.timer", now=True)
        sc.restart("gdm3")
        sc.daemon_reload()
        self.assertFalse(sc.is_active("gdm3"))
        self.assertEqual(
            runner.calls,
            [
                ["systemctl", "--root=/mnt/img", "mask", "suspend.target"],
                ["systemctl", "--root=/mnt/img", "enable", "freeze-guard-check.timer"],
            ],
        )

    def test_live_host(self) -> None:
        runner = ScriptedRunner({"is-active": (3, "", "")})
        sc = Systemctl(runner, root=Path("/"))
        self.assertFalse(sc.offline)
        sc.enable("nvidia-persistenced.service", now=True)
        self.assertFalse(sc.is_active("gdm3"))
        self.assertEqual(runner.calls[0], ["systemctl", "enable", "--now", "nvidia-persistenced.service"])
        self.assertEqual(runner.calls[1], ["systemctl", "is-active", "--quiet", "gdm3"])

    def test_failure_raises(self) -> None:
        runner = ScriptedRunner({"mask": (1, "", "Access denied")})
        with self.assertRaises(SystemctlError) as cm:
            Systemctl(runner).mask("sleep.target")
        self.assertIn("Access denied", str(cm.exception))

    def test_list_active_services(self) -> None:
        out = "cron.service loaded active running Regular background program\ngdm.service loaded active running GNOME Display Manager\n"
        sc = Systemctl(ScriptedRunner({"list-units": (0, out, "")}))
        self.assertEqual(sc.list_active_services(), ["cron.service", "gdm.service"])


if __name__ == "__main__":
    unittest.main()
