import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from freeze_guard.config import CONFIG_ENV, Config, load_config
from freeze_guard.core.errors import ValidationError
from freeze_guard.resources import examples_dir


class TestConfigLoading(unittest.TestCase):
    def test_example_config_loads(self) -> None:
        path = examples_dir() / "config.example.yml"
        cfg = load_config(path)
        self.assertEqual(cfg.disabled_settings, ("kernel-cmdline:mem-sleep-s2idle",))
        self.assertEqual(cfg.notify.urgency, "critical")
        self.assertEqual(cfg.monitor.interval, "6h")
        self.assertEqual(cfg.lock_timeout, 30.0)
        self.assertFalse(cfg.restore_suspend)
        self.assertEqual(cfg.source, path)

    def test_missing_default_file_means_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with patch.dict(os.environ, {CONFIG_ENV: str(Path(td) / "none.yml")}):
                cfg = load_config()
        self.assertEqual(cfg, Config())

    def test_missing_explicit_file_is_an_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ValidationError) as cm:
                load_config(Path(td) / "none.yml")
        self.assertEqual(cm.exception.code, "config.not_found")

    def test_empty_file_means_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "config.yml"
            p.write_text("# nothing configured\n", encoding="utf-8")
            cfg = load_config(p)
        self.assertEqual(cfg.trace_path, Config().trace_path)

    def test_unknown_key_is_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "config.yml"
            p.write_text("disable_settings: [a]\n", encoding="utf-8")
            with self.assertRaises(ValidationError) as cm:
                load_config(p)
        self.assertEqual(cm.exception.code, "config.invalid")
        self.assertTrue(cm.exception.data["errors"])

    def test_bad_yaml(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "config.yml"
            p.write_text("notify: [unclosed\n", encoding="utf-8")
            with self.assertRaises(ValidationError) as cm:
                load_config(p)
        self.assertEqual(cm.exception.code, "config.parse_error")

    def test_restore_suspend_from_uninstall_section(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "config.yml"
            p.write_text("uninstall:\n  restore_suspend: true\nmonitor:\n  interval: 12h\n", encoding="utf-8")
            cfg = load_config(p)
        self.assertTrue(cfg.restore_suspend)
        self.assertEqual(cfg.monitor.interval, "12h")
        self.assertEqual(cfg.monitor.on_boot_sec, "2min")


if __name__ == "__main__":
    unittest.main()
