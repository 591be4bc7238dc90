from __future__ import annotations

import re
import shlex
from typing import Callable, List, Optional

from tools.proc.run import Runner, run_command

KEY = "GRUB_CMDLINE_LINUX_DEFAULT"

_LINE_RE = re.compile(r"^(?P<prefix>\s*" + KEY + r"=)(?P<value>.*)$")

# Regeneration commands in preference order (Debian family first).
_REGENERATE = (
    ("update-grub", ["update-grub"]),
    ("grub2-mkconfig", ["grub2-mkconfig", "-o", "/boot/grub2/grub.cfg"]),
    ("grub-mkconfig", ["grub-mkconfig", "-o", "/boot/grub/grub.cfg"]),
)


def _token_key(token: str) -> str:
    return token.split("=", 1)[0]


def _find_line(lines: List[str]) -> Optional[int]:
    idx = None
    for i, line in enumerate(lines):
        if _LINE_RE.match(line):
            idx = i  # last assignment wins, as in the shell
    return idx


def _parse_value(raw: str) -> List[str]:
    try:
        parts = shlex.split(raw, comments=True)
    except ValueError:
        parts = [raw.strip().strip("\"'")]
    return " ".join(parts).split()


def read_tokens(text: str) -> Optional[List[str]]:
    """Return the kernel arguments from GRUB_CMDLINE_LINUX_DEFAULT, or None if unset."""
    lines = text.splitlines()
    idx = _find_line(lines)
    if idx is None:
        return None
    m = _LINE_RE.match(lines[idx])
    assert m is not None
    return _parse_value(m.group("value"))


def find_key(tokens: List[str], token: str) -> Optional[str]:
    """Return the existing token with the same key (e.g. consoleblank=600), if any."""
    key = _token_key(token)
    for t in tokens:
        if _token_key(t) == key:
            return t
    return None


def _render(tokens: List[str]) -> str:
    return '{}="{}"'.format(KEY, " ".join(tokens))


def set_token(text: str, token: str) -> str:
    """Set `token`, replacing any token with the same key. Other lines are kept verbatim."""
    lines = text.splitlines()
    idx = _find_line(lines)
    if idx is None:
        lines.append(_render([token]))
    else:
        m = _LINE_RE.match(lines[idx])
        assert m is not None
        tokens = [t for t in _parse_value(m.group("value")) if _token_key(t) != _token_key(token)]
        tokens.append(token)
        lines[idx] = _render(tokens)
    return "\n".join(lines) + "\n"


def remove_token(text: str, token: str) -> str:
    """Remove exactly `token`; returns the text unchanged when absent."""
    lines = text.splitlines()
    idx = _find_line(lines)
    if idx is None:
        return text
    m = _LINE_RE.match(lines[idx])
    assert m is not None
    tokens = _parse_value(m.group("value"))
    if token not in tokens:
        return text
    lines[idx] = _render([t for t in tokens if t != token])
    return "\n".join(lines) + "\n"


def regenerate(runner: Runner = run_command, *, which: Callable[[str], Optional[str]], timeout: float = 120.0) -> None:
    """
    Regenerate the bootloader config with whichever grub tool is installed.
    Raises FileNotFoundError when none is available, RuntimeError on failure.
    """
    for tool, argv in _REGENERATE:
        if which(tool):
            res = runner(argv, timeout=timeout)
            if not res.ok:
                raise RuntimeError("{} failed: {}".format(tool, res.error_text()))
            return
    raise FileNotFoundError("no grub configuration tool found (update-grub, grub2-mkconfig, grub-mkconfig)")
