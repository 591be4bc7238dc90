from .systemctl import Systemctl, SystemctlError

__all__ = ["Systemctl", "SystemctlError"]
