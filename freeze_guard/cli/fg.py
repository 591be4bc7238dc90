from __future__ import annotations

import argparse
import json
import os
import sys
import uuid
from functools import partial
from pathlib import Path
from typing import Optional, Tuple

from freeze_guard import __version__
from freeze_guard.bootstrap_settings import SUSPEND_DENY, build_catalogs
from freeze_guard.cli.formatting import render_catalog, render_evidence, render_report
from freeze_guard.config import Config, load_config
from freeze_guard.core.errors import ConsentRequired, FreezeGuardError
from freeze_guard.core.host_context import HostContext, detect_host_context
from freeze_guard.core.policy_engine import PolicyEngine
from freeze_guard.core.reconciler import Mode, Reconciler, exit_code
from freeze_guard.core.run_lock import RunLock
from freeze_guard.core.runtime_context import RuntimeContext
from freeze_guard.evidence import collect_evidence
from freeze_guard.monitor import DriftMonitor
from freeze_guard.recovery import FailureReason, RecoveryController
from freeze_guard.registry.catalog import Catalog
from freeze_guard.settings.content import SLEEP_TARGETS
from freeze_guard.settings.env import SystemEnv, system_env
from freeze_guard.trace.replay import Replay
from freeze_guard.trace.syslog_sink import SyslogSink
from freeze_guard.trace.trace_emitter import TraceEmitter
from freeze_guard.trace.trace_store_jsonl import TraceStoreJSONL
from tools.fs._path import under_root
from tools.notify import send_run


def _format_cli_error(e: Exception) -> str:
    """
    Print-friendly error formatting for CLI commands.
    - Always includes code/message (via __str__) for FreezeGuardError
    - Includes the structured `data` payload when present
    """
    if isinstance(e, FreezeGuardError) and isinstance(e.data, dict) and e.data:
        return str(e) + "\n" + json.dumps(e.data, ensure_ascii=False, indent=2)
    return str(e)


def _stdin_is_tty() -> bool:
    return sys.stdin is not None and sys.stdin.isatty()


def _confirm_bool(text: str, *, default: bool = False) -> bool:
    d = "Y/n" if default else "y/N"
    sys.stderr.write(f"{text} [{d}] ")
    sys.stderr.flush()
    v = sys.stdin.readline().strip().lower()
    if not v:
        return bool(default)
    return v in ("y", "yes")


def _writable(path: Path) -> bool:
    p = path
    while not p.exists():
        if p.parent == p:
            return False
        p = p.parent
    return os.access(p, os.W_OK)


def _load(args: argparse.Namespace) -> Tuple[RuntimeContext, Config]:
    cfg = load_config(Path(args.config) if args.config else None)
    root = Path(args.root).resolve() if args.root else Path("/")
    ctx = RuntimeContext(
        run_id=args.run_id or "run_{}".format(uuid.uuid4().hex[:12]),
        root=root,
        trace_path=Path(args.trace) if args.trace else under_root(root, cfg.trace_path),
        lock_path=under_root(root, cfg.lock_path),
        lock_timeout=cfg.lock_timeout,
        command_timeout=cfg.command_timeout,
        interactive=_stdin_is_tty(),
    )
    return ctx, cfg


def _open_trace(ctx: RuntimeContext, *, required: bool, syslog: Optional[SyslogSink] = None) -> TraceEmitter:
    if not required and not _writable(ctx.trace_path):
        print(f"note: trace log {ctx.trace_path} is not writable; not recording this run", file=sys.stderr)
        return TraceEmitter(None, ctx.run_id, syslog=syslog)
    return TraceEmitter(TraceStoreJSONL(ctx.trace_path), ctx.run_id, syslog=syslog)


def _authorize(ctx: RuntimeContext, command: str, trace: TraceEmitter) -> None:
    policy = PolicyEngine()
    decision = policy.evaluate(ctx, command)
    trace.emit(
        "policy_decision",
        message=decision.summary,
        data={"command": command, "decision": decision.decision, "reason_codes": decision.reason_codes},
    )
    if "privilege.limited" in decision.reason_codes:
        print(f"note: {decision.summary}", file=sys.stderr)
    policy.require_allow(decision)


def _prepare(
    args: argparse.Namespace,
    command: str,
    *,
    mutating: bool,
    syslog: bool = False,
) -> Tuple[RuntimeContext, Config, TraceEmitter, SystemEnv, HostContext, Catalog, Catalog]:
    ctx, cfg = _load(args)
    sink = None
    if syslog and cfg.syslog.enabled and not ctx.offline:
        sink = SyslogSink(cfg.syslog.ident)
    trace = _open_trace(ctx, required=mutating, syslog=sink)
    _authorize(ctx, command, trace)
    env = system_env(ctx)
    remediation, monitor = build_catalogs(env, cfg)
    host = detect_host_context(env)
    return ctx, cfg, trace, env, host, remediation, monitor


def _print_report(report, as_json: bool) -> None:
    if as_json:
        print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
    else:
        print(render_report(report))


def _print_catalog(catalog: Catalog, host: HostContext, as_json: bool) -> None:
    applicable = {s.setting_id for s in catalog.applicable(host)}
    rows = catalog.list_settings()
    for row in rows:
        row["applies"] = row["setting_id"] in applicable
    if as_json:
        print(json.dumps(rows, ensure_ascii=False, indent=2))
        return
    print(render_catalog(rows))


def _lock(ctx: RuntimeContext) -> RunLock:
    return RunLock(ctx.lock_path, timeout=ctx.lock_timeout)


def cmd_diagnose(args: argparse.Namespace) -> int:
    _, _, trace, env, host, remediation, monitor = _prepare(args, "diagnose", mutating=False)
    catalog = remediation.merged(monitor)
    if args.list:
        _print_catalog(catalog, host, args.json)
        return 0
    report = Reconciler(trace).run(catalog, host, Mode.CHECK_ONLY)
    evidence = None
    if not args.no_evidence:
        evidence = collect_evidence(env, host)
        trace.emit(
            "evidence_collected",
            message="{} finding(s), {} risk(s)".format(len(evidence.findings), len(evidence.risks)),
            data=evidence.to_dict(),
        )

    if args.json:
        out = report.to_dict()
        if evidence is not None:
            out["evidence"] = evidence.to_dict()
        print(json.dumps(out, ensure_ascii=False, indent=2))
    else:
        print(render_report(report))
        if evidence is not None:
            print("")
            print(render_evidence(evidence))
    # evidence describes past boots; the exit code reflects current settings only
    return exit_code(report)


def cmd_fix(args: argparse.Namespace) -> int:
    ctx, _, trace, _, host, remediation, _ = _prepare(args, "fix", mutating=True)
    with _lock(ctx):
        report = Reconciler(trace).run(remediation, host, Mode.REPAIR)
    _print_report(report, args.json)
    if not args.json and report.counts["applied"]:
        print("Run `freeze-guard install-monitor` to re-apply settings automatically when they drift.")
    return exit_code(report)


def cmd_monitor(args: argparse.Namespace) -> int:
    ctx, cfg, trace, _, host, remediation, _ = _prepare(args, "monitor", mutating=True, syslog=True)
    notifier = None
    if not ctx.offline:
        notifier = partial(send_run, timeout=ctx.command_timeout)
    mon = DriftMonitor(remediation, trace, lock=_lock(ctx), notifier=notifier, notify=cfg.notify)
    result = mon.run(host)
    if result.alert is not None:
        print("WARNING: {}".format(result.alert.message))
    else:
        print("All settings are intact. No regressions detected.")
    return exit_code(result.report)


def cmd_install_monitor(args: argparse.Namespace) -> int:
    ctx, cfg, trace, _, host, _, monitor = _prepare(args, "install-monitor", mutating=True)
    with _lock(ctx):
        report = Reconciler(trace).run(monitor, host, Mode.REPAIR)
    _print_report(report, args.json)
    if not args.json:
        print(
            "Drift checks run {} after boot, every {} and after package upgrades.".format(
                cfg.monitor.on_boot_sec, cfg.monitor.interval
            )
        )
        print("View results: freeze-guard show-trace --event-type drift_repaired")
    return exit_code(report)


def cmd_uninstall(args: argparse.Namespace) -> int:
    ctx, cfg, trace, _, host, remediation, monitor = _prepare(args, "uninstall", mutating=True)

    if not args.yes:
        if not ctx.interactive:
            raise ConsentRequired(
                code="consent.required",
                message="uninstall re-enables default power management; pass --yes to confirm non-interactively",
            )
        print("Warning: this re-enables default power management.", file=sys.stderr)
        print("If you have an NVIDIA GPU, idle freezes may return.", file=sys.stderr)
        if not _confirm_bool("Continue?"):
            print("Aborted.")
            return 0

    restore = bool(args.restore_suspend or cfg.restore_suspend)
    exclude = () if restore else (SUSPEND_DENY,)
    with _lock(ctx):
        # Monitor first, so the timer cannot re-apply what is being removed.
        report = Reconciler(trace).revert(monitor.merged(remediation), host, exclude_classes=exclude)
    _print_report(report, args.json)
    if not restore and not args.json:
        units = " ".join(f"{t}.target" for t in SLEEP_TARGETS)
        print("")
        print("Note: systemd sleep/suspend targets were NOT unmasked.")
        print("To re-enable system suspend, run:")
        print(f"  sudo systemctl unmask {units}")
        print("or rerun with --restore-suspend.")
    return exit_code(report)


def cmd_recover(args: argparse.Namespace) -> int:
    ctx, _ = _load(args)
    trace = _open_trace(ctx, required=True)
    _authorize(ctx, "recover", trace)
    env = system_env(ctx)
    confirm = (lambda text: _confirm_bool(text)) if ctx.interactive else None
    outcome = RecoveryController(env.systemctl, confirm=confirm, trace=trace).run()
    print(outcome.message)
    if outcome.ok or outcome.reason == FailureReason.CONSENT_DECLINED:
        return 0
    return 1


def cmd_show_trace(args: argparse.Namespace) -> int:
    if args.trace:
        path = Path(args.trace)
    else:
        cfg = load_config(Path(args.config) if args.config else None)
        root = Path(args.root) if args.root else Path("/")
        path = under_root(root, cfg.trace_path)

    events = Replay(path).select(event_type=args.event_type, run_id=args.filter_run_id, tail=args.tail)
    for e in events:
        if args.pretty:
            print(json.dumps(e, ensure_ascii=False, indent=2))
        else:
            print(json.dumps(e, ensure_ascii=False))
    return 0


def main(argv=None) -> int:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Config YAML (default: $FREEZE_GUARD_CONFIG or /etc/freeze-guard/config.yml)")
    common.add_argument("--root", help="Operate on an alternate filesystem root (image or chroot)")
    common.add_argument("--trace", help="Trace output path (jsonl)")
    common.add_argument("--run-id", help="Run ID for trace correlation")

    parser = argparse.ArgumentParser(prog="freeze-guard", description="Keep NVIDIA idle freezes away by reconciling power settings.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_diag = sub.add_parser("diagnose", parents=[common], help="Report settings that leave this host exposed (read-only)")
    p_diag.add_argument("--json", action="store_true", help="Output the run report as JSON")
    p_diag.add_argument("--list", action="store_true", help="List the settings catalog without probing")
    p_diag.add_argument("--no-evidence", action="store_true", help="Skip the driver, session and journal evidence scan")
    p_diag.set_defaults(func=cmd_diagnose)

    p_fix = sub.add_parser("fix", parents=[common], help="Apply every missing or drifted setting (root)")
    p_fix.add_argument("--json", action="store_true", help="Output the run report as JSON")
    p_fix.set_defaults(func=cmd_fix)

    p_mon = sub.add_parser("monitor", parents=[common], help="Re-apply drifted settings and alert (timer/hook target)")
    p_mon.set_defaults(func=cmd_monitor)

    p_inst = sub.add_parser("install-monitor", parents=[common], help="Install the drift-check timer and package hooks (root)")
    p_inst.add_argument("--json", action="store_true", help="Output the run report as JSON")
    p_inst.set_defaults(func=cmd_install_monitor)

    p_un = sub.add_parser("uninstall", parents=[common], help="Remove everything freeze-guard wrote (root)")
    p_un.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    p_un.add_argument("--restore-suspend", action="store_true", help="Also unmask the systemd sleep targets")
    p_un.add_argument("--json", action="store_true", help="Output the run report as JSON")
    p_un.set_defaults(func=cmd_uninstall)

    p_rec = sub.add_parser("recover", parents=[common], help="Restart the display manager of a frozen session (root, from a TTY)")
    p_rec.set_defaults(func=cmd_recover)

    p_show = sub.add_parser("show-trace", parents=[common], help="Show trace events from the JSONL log")
    p_show.add_argument("--event-type", help="Filter by event_type")
    p_show.add_argument("--filter-run-id", help="Filter by run_id")
    p_show.add_argument("--tail", type=int, help="Show only last N events")
    p_show.add_argument("--pretty", action="store_true", help="Pretty-print each event as JSON")
    p_show.set_defaults(func=cmd_show_trace)

    ns = parser.parse_args(argv)
    try:
        return int(ns.func(ns))
    except Exception as e:  # noqa: BLE001
        print(_format_cli_error(e), file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
