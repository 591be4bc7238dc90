from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List

from tools.fs.read import read_attr

DISPLAY_CLASS_PREFIX = "0x03"

VENDOR_NAMES = {
    "0x10de": "nvidia",
    "0x8086": "intel",
    "0x1002": "amd",
}


@dataclass(frozen=True)
class PciDevice:
    slot: str
    path: Path
    vendor: str
    device_class: str

    @property
    def vendor_name(self) -> str:
        return VENDOR_NAMES.get(self.vendor, "other")

    @property
    def is_display(self) -> bool:
        return self.device_class.startswith(DISPLAY_CLASS_PREFIX)


def list_devices(sysfs_root: Path) -> List[PciDevice]:
    """
    Enumerate PCI devices under <sysfs_root>/bus/pci/devices (read-only).
    Devices without readable vendor/class attributes are ignored.
    """
    devices_dir = sysfs_root / "bus" / "pci" / "devices"
    if not devices_dir.is_dir():
        return []

    out: List[PciDevice] = []
    for dev in sorted(devices_dir.iterdir()):
        vendor = read_attr(dev / "vendor")
        device_class = read_attr(dev / "class")
        if not vendor or not device_class:
            continue
        out.append(PciDevice(slot=dev.name, path=dev, vendor=vendor.lower(), device_class=device_class.lower()))
    return out


def display_devices(sysfs_root: Path, vendor_name: str | None = None) -> List[PciDevice]:
    devs = [d for d in list_devices(sysfs_root) if d.is_display]
    if vendor_name is not None:
        devs = [d for d in devs if d.vendor_name == vendor_name]
    return devs
