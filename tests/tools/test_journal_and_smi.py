import unittest

from tools.journal import JournalError, count_matches, list_boots
from tools.nvidia import query_gpu
from tools.proc.run import CommandResult


class OneReply:
    def __init__(self, rc=0, out="", err=""):
        self.reply = (rc, out, err)
        self.calls = []

    def __call__(self, argv, *, timeout):
        self.calls.append(argv)
        rc, out, err = self.reply
        return CommandResult(argv=tuple(argv), returncode=rc, stdout=out, stderr=err)


class TestJournal(unittest.TestCase):
    def test_count_matches(self) -> None:
        runner = OneReply(0, "Oct 12 host kernel: a\nOct 12 host kernel: b\n")
        self.assertEqual(count_matches(runner, "NVIDIA.*Failed", boot="-1"), 2)
        self.assertEqual(runner.calls[0], ["journalctl", "--no-pager", "--quiet", "-b", "-1", "--grep", "NVIDIA.*Failed"])

    def test_no_match_is_zero(self) -> None:
        self.assertEqual(count_matches(OneReply(1), "x"), 0)
        self.assertEqual(count_matches(OneReply(0, "-- No entries --\n"), "x"), 0)

    def test_unavailable_boot_raises(self) -> None:
        with self.assertRaises(JournalError):
            count_matches(OneReply(1, "", "Data from the specified boot (-1) is not available"), "x")

    def test_list_boots_old_and_new_format(self) -> None:
        old = OneReply(0, "-1 7d2c0a Mon 2026-10-12 08:00 UTC Mon 2026-10-12 18:00 UTC\n 0 9f41bb Tue 2026-10-13 08:00 UTC Tue 2026-10-13 09:00 UTC\n")
        self.assertEqual(list_boots(old), ["7d2c0a", "9f41bb"])
        new = OneReply(0, "IDX BOOT ID FIRST ENTRY LAST ENTRY\n  0 9f41bb Tue 2026-10-13 08:00:00 UTC Tue 2026-10-13 09:00:00 UTC\n")
        self.assertEqual(list_boots(new), ["9f41bb"])

    def test_list_boots_failure(self) -> None:
        with self.assertRaises(JournalError):
            list_boots(OneReply(1, "", "No journal files were found."))


class TestNvidiaSmi(unittest.TestCase):
    def test_query_gpu_keeps_commas_in_last_field(self) -> None:
        runner = OneReply(0, "550.54.14, Enabled, NVIDIA RTX A2000, 8GB\n")
        gpu = query_gpu(["driver_version", "persistence_mode", "name"], runner)
        self.assertEqual(gpu, {"driver_version": "550.54.14", "persistence_mode": "Enabled", "name": "NVIDIA RTX A2000, 8GB"})
        self.assertEqual(runner.calls[0][1], "--query-gpu=driver_version,persistence_mode,name")

    def test_query_gpu_failure(self) -> None:
        with self.assertRaises(RuntimeError):
            query_gpu(["name"], OneReply(9, "", "NVIDIA-SMI has failed because it couldn't communicate with the NVIDIA driver."))


if __name__ == "__main__":
    unittest.main()
