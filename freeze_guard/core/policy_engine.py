from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .errors import PermissionDenied, PolicyDenied
from .runtime_context import RuntimeContext

# command -> whether it writes system state
COMMANDS: Dict[str, bool] = {
    "diagnose": False,
    "show-trace": False,
    "fix": True,
    "monitor": True,
    "install-monitor": True,
    "uninstall": True,
    "recover": True,
}


@dataclass(frozen=True)
class PolicyResult:
    decision: str  # allow|deny
    reason_codes: List[str]
    summary: Optional[str] = None


class PolicyEngine:
    """
    Run-level preconditions, evaluated before any setting is touched.

    Enforced invariants:
    - command must be known
    - mutating commands require root, unless operating on an alternate root
    - read-only commands run unprivileged; probes that need root report unknown
    """

    def __init__(self, euid: Callable[[], int] = os.geteuid):
        self._euid = euid

    def evaluate(self, ctx: RuntimeContext, command: str) -> PolicyResult:
        mutating = COMMANDS.get(command)
        if mutating is None:
            return PolicyResult(decision="deny", reason_codes=["command.unknown"], summary=f"Unknown command: {command}")

        if ctx.offline:
            return PolicyResult(
                decision="allow",
                reason_codes=["root.alternate", "privilege.waived"],
                summary=f"Operating on alternate root {ctx.root}",
            )

        is_root = self._euid() == 0
        if mutating and not is_root:
            return PolicyResult(
                decision="deny",
                reason_codes=["privilege.required"],
                summary=f"'{command}' must be run as root (use sudo)",
            )
        if not mutating and not is_root:
            return PolicyResult(
                decision="allow",
                reason_codes=["privilege.limited"],
                summary="Running unprivileged; some probes may report unknown",
            )
        return PolicyResult(decision="allow", reason_codes=["privilege.ok"], summary="Allowed")

    def require_allow(self, result: PolicyResult) -> None:
        if result.decision == "allow":
            return
        if "privilege.required" in result.reason_codes:
            raise PermissionDenied(
                code="privilege.required",
                message=result.summary or "Root privileges are required",
                data={"reasons": result.reason_codes},
            )
        raise PolicyDenied(
            code="policy.denied",
            message=result.summary or "Denied by policy",
            data={"reasons": result.reason_codes},
        )
