from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FreezeGuardError(Exception):
    code: str
    message: str
    data: dict[str, Any] | None = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ValidationError(FreezeGuardError):
    pass


class PolicyDenied(FreezeGuardError):
    pass


class PermissionDenied(FreezeGuardError):
    pass


class ResourceUnavailable(FreezeGuardError):
    """The subsystem a setting targets does not exist on this host."""


class ApplyFailed(FreezeGuardError):
    pass


class ProbeInconclusive(FreezeGuardError):
    pass


class ConsentRequired(FreezeGuardError):
    pass


class LockTimeout(FreezeGuardError):
    pass
