import tempfile
import unittest
from pathlib import Path

from freeze_guard.testing import add_pci_device
from tools.sysfs import display_devices, list_devices


class TestSysfsPci(unittest.TestCase):
    def test_display_devices_by_vendor(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            add_pci_device(root, "0000:01:00.0", "0x10de", device_class="0x030200")
            add_pci_device(root, "0000:01:00.1", "0x10de", device_class="0x040300")
            add_pci_device(root, "0000:00:02.0", "0x8086")

            sys_root = root / "sys"
            self.assertEqual(len(list_devices(sys_root)), 3)
            self.assertEqual([d.slot for d in display_devices(sys_root)], ["0000:00:02.0", "0000:01:00.0"])
            nvidia = display_devices(sys_root, "nvidia")
            self.assertEqual([d.slot for d in nvidia], ["0000:01:00.0"])
            self.assertEqual(nvidia[0].vendor_name, "nvidia")

    def test_missing_sysfs(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            self.assertEqual(display_devices(Path(td) / "sys"), [])


if __name__ == "__main__":
    unittest.main()
