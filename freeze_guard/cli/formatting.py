from __future__ import annotations

from typing import Any, Dict, List

from freeze_guard.core.report import RunReport, SettingOutcome
from freeze_guard.core.setting import ProbeState
from freeze_guard.evidence import Evidence

_TAGS = {
    "applied": "[ FIX]",
    "apply_failed": "[FAIL]",
    "skipped": "[SKIP]",
    "reverted": "[ DEL]",
    "revert_failed": "[FAIL]",
}


def _tag(e: SettingOutcome) -> str:
    if e.action in _TAGS:
        return _TAGS[e.action]
    if e.before is None or e.before.state == ProbeState.SATISFIED:
        return "[  OK]"
    if e.before.state == ProbeState.UNKNOWN:
        return "[ ?? ]"
    return "[RISK]" if e.severity == "critical" else "[WARN]"


def _detail(e: SettingOutcome) -> str:
    if e.error:
        return e.error
    if e.action in ("reported", "apply_failed") and e.before is not None:
        return e.before.describe()
    if e.action == "applied":
        return f"effective after {e.effective_after}" if e.effective_after != "live" else ""
    return ""


def render_report(report: RunReport) -> str:
    """Plain-text report, one line per setting, then a summary."""
    lines: List[str] = []
    width = max((len(e.setting_id) for e in report.entries), default=0)
    for e in report.entries:
        line = f"{_tag(e)} {e.setting_id.ljust(width)}  {e.title}"
        detail = _detail(e)
        if detail:
            line += f" ({detail})"
        lines.append(line)

    c = report.counts
    lines.append("")
    if report.mode == "check_only":
        risks = len(report.risks)
        warnings = sum(1 for e in report.entries if e.action == "reported" and not e.is_risk)
        if risks:
            lines.append(f"Found {risks} critical risk(s) and {warnings} warning(s).")
        elif warnings:
            lines.append(f"Found {warnings} warning(s), no critical risks.")
        else:
            lines.append("No risks detected. Your system appears to be protected.")
    elif report.mode == "revert":
        lines.append(f"Reverted {c['reverted']} setting(s), {c['failed']} failed, {c['skipped']} skipped.")
    else:
        if c["applied"] == 0 and c["failed"] == 0:
            lines.append("All fixes were already in place. No changes needed.")
        else:
            lines.append(f"Applied {c['applied']} fix(es), {c['failed']} failed, {c['skipped']} skipped.")
        lines.extend(_followups(report))
    return "\n".join(lines)


def _followups(report: RunReport) -> List[str]:
    applied = [e for e in report.entries if e.action == "applied"]
    out = []
    if any(e.effective_after == "reboot" for e in applied):
        out.append("Reboot recommended for all changes to take effect.")
    elif any(e.effective_after == "service-restart" for e in applied):
        out.append("Log out and back in for session settings to take effect.")
    return out


def render_evidence(evidence: Evidence) -> str:
    lines = ["Freeze evidence:"]
    for f in evidence.findings:
        lines.append(f"  {f.level.upper():<7} {f.message}")
    return "\n".join(lines)


def render_catalog(rows: List[Dict[str, Any]]) -> str:
    """One line per setting; settings that do not apply to this host are marked '-'."""
    width = max((len(r["setting_id"]) for r in rows), default=0)
    lines = []
    for r in rows:
        mark = " " if r.get("applies", True) else "-"
        lines.append(f"{mark} {r['setting_id'].ljust(width)}  {r['severity']:<8} {r['setting_class']:<14} {r['title']}")
    lines.append("")
    lines.append("Settings marked - do not apply to this host. Disable any setting with `disabled_settings` in the config.")
    return "\n".join(lines)
