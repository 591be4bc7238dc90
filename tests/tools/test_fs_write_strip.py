import stat
import tempfile
import unittest
from pathlib import Path

from tools.fs import read_attr, read_text, remove_file, strip_block, write_attr, write_text
from tools.fs._path import under_root


class TestFsWrite(unittest.TestCase):
    def test_write_text_reports_change_and_mode(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "etc" / "a.conf"
            self.assertTrue(write_text(p, "x\n", mode=0o600))
            self.assertFalse(write_text(p, "x\n", mode=0o600))
            self.assertEqual(stat.S_IMODE(p.stat().st_mode), 0o600)
            self.assertEqual([c.name for c in p.parent.iterdir()], ["a.conf"])

    def test_write_attr_needs_existing_attribute(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "d3cold_allowed"
            with self.assertRaises(FileNotFoundError):
                write_attr(p, "0")
            p.write_text("1\n", encoding="utf-8")
            write_attr(p, "0")
            self.assertEqual(read_attr(p), "0")

    def test_read_and_remove_missing(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "nope"
            self.assertIsNone(read_text(p))
            self.assertIsNone(read_attr(p))
            self.assertFalse(remove_file(p))

    def test_under_root(self) -> None:
        self.assertEqual(under_root(Path("/"), "/etc/x"), Path("/etc/x"))
        self.assertEqual(under_root(Path("/mnt/img"), "/etc/x"), Path("/mnt/img/etc/x"))


class TestStripBlock(unittest.TestCase):
    def test_strip_marked_block(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "f"
            p.write_text("keep\n\n# >>> b\nmanaged\n# <<< e\ntail\n", encoding="utf-8")
            self.assertTrue(strip_block(p, "# >>> b", "# <<< e"))
            self.assertEqual(p.read_text(encoding="utf-8"), "keep\n\ntail\n")
            self.assertFalse(strip_block(p, "# >>> b", "# <<< e"))

    def test_unterminated_block_keeps_following_lines(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "f"
            p.write_text("a=1\n# >>> b\nkeep=1\nuser=2\n", encoding="utf-8")
            self.assertTrue(strip_block(p, "# >>> b", "# <<< e"))
            self.assertEqual(p.read_text(encoding="utf-8"), "a=1\nkeep=1\nuser=2\n")

    def test_complete_block_after_stray_begin_marker(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "f"
            p.write_text("# >>> b\nuser=1\n# >>> b\nmanaged\n# <<< e\n", encoding="utf-8")
            self.assertTrue(strip_block(p, "# >>> b", "# <<< e"))
            self.assertEqual(p.read_text(encoding="utf-8"), "user=1\n")

    def test_legacy_marker_drops_to_end_of_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "f"
            p.write_text("keep\n\n# legacy\nold=1\nold=2\n", encoding="utf-8")
            self.assertTrue(strip_block(p, "# >>> b", "# <<< e", legacy_marker="# legacy"))
            self.assertEqual(p.read_text(encoding="utf-8"), "keep\n")


if __name__ == "__main__":
    unittest.main()
