from .runtime_context import RuntimeContext
from .policy_engine import PolicyEngine, PolicyResult
from .run_lock import RunLock
from .setting import ApplyResult, EffectiveAfter, ProbeResult, ProbeState, Setting, Severity
from .host_context import HostContext, detect_host_context
from .report import RunReport, SettingOutcome
from .reconciler import Mode, Reconciler

__all__ = [
  "RuntimeContext",
  "PolicyEngine",
  "PolicyResult",
  "RunLock",
  "ApplyResult",
  "EffectiveAfter",
  "ProbeResult",
  "ProbeState",
  "Setting",
  "Severity",
  "HostContext",
  "detect_host_context",
  "RunReport",
  "SettingOutcome",
  "Mode",
  "Reconciler",
]
