from __future__ import annotations

import pwd
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from tools.proc.run import Runner, run_command

URGENCIES = ("low", "normal", "critical")


def _session_buses(run_user_dir: Path) -> List[Tuple[int, Path]]:
    if not run_user_dir.is_dir():
        return []
    out = []
    for entry in sorted(run_user_dir.iterdir()):
        if not entry.name.isdigit():
            continue
        bus = entry / "bus"
        if bus.is_socket():
            out.append((int(entry.name), bus))
    return out


def _user_name(uid: int) -> Optional[str]:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return None


def run(
    args: Dict[str, Any],
    dry_run: bool,
    *,
    runner: Runner = run_command,
    run_user_dir: Path = Path("/run/user"),
    timeout: float = 10.0,
) -> Dict[str, Any]:
    """
    Send a desktop notification to every logged-in user with a session bus.
    args:
      - title: string
      - message: string
      - urgency: low|normal|critical (default critical)

    Best effort: per-user failures are collected in `errors`, never raised.
    """
    title = args.get("title")
    message = args.get("message")
    urgency = args.get("urgency", "critical")
    if not isinstance(title, str) or not title:
        raise ValueError("notify.send: 'title' must be a non-empty string")
    if not isinstance(message, str) or not message:
        raise ValueError("notify.send: 'message' must be a non-empty string")
    if urgency not in URGENCIES:
        raise ValueError("notify.send: 'urgency' must be one of {}".format(", ".join(URGENCIES)))

    targets = []
    for uid, bus in _session_buses(run_user_dir):
        user = _user_name(uid)
        if user is not None:
            targets.append((user, bus))

    if dry_run:
        return {
            "dry_run": True,
            "expected_effects": [
                {"kind": "notify", "summary": "Notify {}: {}".format(user, message), "resources": [str(bus)]}
                for user, bus in targets
            ],
        }

    sent: List[str] = []
    errors: List[Dict[str, str]] = []
    for user, bus in targets:
        argv = [
            "sudo",
            "-u",
            user,
            "env",
            "DBUS_SESSION_BUS_ADDRESS=unix:path={}".format(bus),
            "notify-send",
            "-u",
            urgency,
            title,
            message,
        ]
        try:
            res = runner(argv, timeout=timeout)
        except (OSError, TimeoutError) as e:
            errors.append({"user": user, "error": repr(e)})
            continue
        if res.ok:
            sent.append(user)
        else:
            errors.append({"user": user, "error": res.error_text()})
    return {"dry_run": False, "sent": sent, "errors": errors}
