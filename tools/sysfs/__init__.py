from .pci import PciDevice, display_devices, list_devices

__all__ = ["PciDevice", "display_devices", "list_devices"]
