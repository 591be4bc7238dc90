from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

from freeze_guard.core.errors import ApplyFailed, ProbeInconclusive, ResourceUnavailable
from freeze_guard.core.host_context import HostContext
from freeze_guard.core.setting import (
    ApplyResult,
    EffectiveAfter,
    ProbeResult,
    ProbeState,
    Setting,
    Severity,
    always,
)
from tools.fs import read_attr, read_text, remove_file, strip_block, write_attr, write_text
from tools.grub import find_key, read_tokens, remove_token, set_token
from tools.sysfs import display_devices
from tools.systemd import SystemctlError

from .env import SystemEnv


@dataclass(frozen=True)
class Part:
    """
    One sub-write of a setting.

    probe() may raise ResourceUnavailable when its target does not exist on
    this host; apply()/revert() raise on failure.
    """

    name: str
    probe: Callable[[], ProbeResult]
    apply: Callable[[], None]
    revert: Optional[Callable[[], None]] = None


def _unavailable(what: str) -> ResourceUnavailable:
    return ResourceUnavailable(code="resource.unavailable", message=what)


def combine(results: Sequence[Tuple[str, ProbeResult]]) -> ProbeResult:
    """Fold per-part probe results into one setting-level result."""
    if len(results) == 1:
        return results[0][1]
    states = {r.state for _, r in results}
    if states == {ProbeState.SATISFIED}:
        return ProbeResult.satisfied()
    if states == {ProbeState.ABSENT}:
        return ProbeResult.absent()
    unknown = [(n, r) for n, r in results if r.state == ProbeState.UNKNOWN]
    if unknown:
        return ProbeResult.unknown("; ".join(f"{n}: {r.reason}" for n, r in unknown))
    detail = "; ".join(f"{n}: {r.describe()}" for n, r in results if r.state != ProbeState.SATISFIED)
    return ProbeResult.drifted(detail)


def _probe_parts(parts: Sequence[Part]) -> List[Tuple[Part, ProbeResult]]:
    out = []
    for part in parts:
        try:
            out.append((part, part.probe()))
        except ResourceUnavailable:
            continue
    return out


def setting_from_parts(
    setting_id: str,
    title: str,
    setting_class: str,
    severity: Severity,
    effective_after: EffectiveAfter,
    parts: Sequence[Part],
    *,
    applies: Callable[[HostContext], bool] = always,
    after_apply: Optional[Tuple[str, Callable[[], None]]] = None,
    after_revert: Optional[Tuple[str, Callable[[], None]]] = None,
    revertible: bool = True,
    resources: Sequence[str] = (),
) -> Setting:
    """
    Build a Setting whose state is the conjunction of its parts.

    apply() walks the parts in order, leaves satisfied parts alone and stops
    at the first failing sub-write, reporting it as `step`. `after_apply`
    (name, hook) runs once when any part changed, e.g. to recompile dconf.
    """
    parts = tuple(parts)

    def probe() -> ProbeResult:
        probed = _probe_parts(parts)
        if not probed:
            raise _unavailable(f"{setting_id}: no managed resource exists on this host")
        return combine([(p.name, r) for p, r in probed])

    def apply() -> ApplyResult:
        probed = _probe_parts(parts)
        if not probed:
            raise _unavailable(f"{setting_id}: no managed resource exists on this host")
        changed = False
        for part, _ in probed:
            # Re-probe: an earlier part may have created what this one checks.
            try:
                current = part.probe()
            except ResourceUnavailable:
                continue
            if current.state == ProbeState.SATISFIED:
                continue
            try:
                part.apply()
            except ApplyFailed as e:
                return ApplyResult.failed(e.message, step=part.name)
            except Exception as e:  # noqa: BLE001
                return ApplyResult.failed(str(e) or repr(e), step=part.name)
            changed = True
        if changed and after_apply is not None:
            step, hook = after_apply
            try:
                hook()
            except ApplyFailed as e:
                return ApplyResult.failed(e.message, step=step)
            except Exception as e:  # noqa: BLE001
                return ApplyResult.failed(str(e) or repr(e), step=step)
        return ApplyResult.applied()

    def revert() -> ApplyResult:
        for part in reversed(parts):
            if part.revert is None:
                continue
            try:
                part.revert()
            except ResourceUnavailable:
                continue
            except Exception as e:  # noqa: BLE001
                return ApplyResult.failed(str(e) or repr(e), step=part.name)
        if after_revert is not None:
            step, hook = after_revert
            try:
                hook()
            except Exception as e:  # noqa: BLE001
                return ApplyResult.failed(str(e) or repr(e), step=step)
        return ApplyResult.applied()

    has_revert = revertible and any(p.revert is not None for p in parts)
    return Setting(
        setting_id=setting_id,
        title=title,
        setting_class=setting_class,
        severity=severity,
        effective_after=effective_after,
        probe=probe,
        apply=apply,
        applies=applies,
        revert=revert if has_revert else None,
        resources=tuple(resources) or tuple(p.name for p in parts),
    )


# -- files -------------------------------------------------------------------


def file_part(
    env: SystemEnv,
    path: str,
    content: str,
    *,
    mode: int = 0o644,
    precondition: Union[str, Callable[[], bool], None] = None,
    keep_on_revert: bool = False,
) -> Part:
    """
    A file owned outright: exact content, removed on revert.

    precondition: a path that must exist, or a predicate; when it does not
    hold the part is unavailable on this host.
    keep_on_revert: the file may be relied on by other packages once written.
    """
    target = env.path(path)

    def _check() -> None:
        if precondition is None:
            return
        if callable(precondition):
            if not precondition():
                raise _unavailable(f"{path}: precondition not met")
        elif not env.path(precondition).exists():
            raise _unavailable(f"{precondition} does not exist")

    def probe() -> ProbeResult:
        _check()
        text = read_text(target)
        if text is None:
            return ProbeResult.absent()
        if text == content:
            return ProbeResult.satisfied()
        return ProbeResult.drifted("content differs")

    def apply() -> None:
        _check()
        write_text(target, content, mode=mode)

    def revert() -> None:
        remove_file(target)

    return Part(name=path, probe=probe, apply=apply, revert=None if keep_on_revert else revert)


def absent_part(env: SystemEnv, path: str) -> Part:
    """A file that must not exist (superseded by another managed file)."""
    target = env.path(path)

    def probe() -> ProbeResult:
        if target.exists():
            return ProbeResult.drifted("present")
        return ProbeResult.satisfied()

    def apply() -> None:
        remove_file(target)

    return Part(name=path, probe=probe, apply=apply, revert=apply)


def line_part(env: SystemEnv, path: str, line: str, full_content: str) -> Part:
    """
    A shared file that must contain `line`. Created with `full_content` when
    missing; otherwise the line is appended and the rest is left alone.
    Never removed: other packages rely on it.
    """
    target = env.path(path)

    def probe() -> ProbeResult:
        text = read_text(target)
        if text is None:
            return ProbeResult.absent()
        if line in (ln.strip() for ln in text.splitlines()):
            return ProbeResult.satisfied()
        return ProbeResult.drifted(f"missing '{line}'")

    def apply() -> None:
        text = read_text(target)
        if text is None:
            write_text(target, full_content)
            return
        if text and not text.endswith("\n"):
            text += "\n"
        write_text(target, text + line + "\n")

    return Part(name=path, probe=probe, apply=apply)


def _extract_block(text: str, begin: str, end: str) -> Optional[str]:
    lines = text.splitlines(keepends=True)
    try:
        start = next(i for i, ln in enumerate(lines) if ln.rstrip("\n") == begin)
    except StopIteration:
        return None
    body = []
    for ln in lines[start + 1 :]:
        if ln.rstrip("\n") == end:
            return "".join(body)
        body.append(ln)
    return None


def block_part(env: SystemEnv, path: str, block: str, *, begin: str, end: str, legacy_marker: Optional[str] = None) -> Part:
    """
    A marked block appended to a file owned by another package. The file
    itself must exist; only the block between the markers is managed.
    """
    target = env.path(path)

    def _text() -> str:
        text = read_text(target)
        if text is None:
            raise _unavailable(f"{path} does not exist")
        return text

    def probe() -> ProbeResult:
        text = _text()
        if legacy_marker is not None and legacy_marker in text.splitlines():
            return ProbeResult.drifted("legacy block present")
        current = _extract_block(text, begin, end)
        if current is None:
            return ProbeResult.absent()
        if current == block:
            return ProbeResult.satisfied()
        return ProbeResult.drifted("block content differs")

    def apply() -> None:
        _text()
        strip_block(target, begin, end, legacy_marker=legacy_marker)
        text = read_text(target) or ""
        if text and not text.endswith("\n"):
            text += "\n"
        write_text(target, f"{text}\n{begin}\n{block}{end}\n")

    def revert() -> None:
        strip_block(target, begin, end, legacy_marker=legacy_marker)

    return Part(name=path, probe=probe, apply=apply, revert=revert)


# -- systemd -----------------------------------------------------------------


def _unit_state(env: SystemEnv, unit: str) -> str:
    try:
        return env.systemctl.is_enabled(unit)
    except SystemctlError as e:
        raise ProbeInconclusive(code="probe.inconclusive", message=str(e), data={"unit": unit})


def unit_mask_part(env: SystemEnv, unit: str) -> Part:
    def probe() -> ProbeResult:
        state = _unit_state(env, unit)
        if state == "not-found":
            raise _unavailable(f"{unit} not found")
        if state == "masked":
            return ProbeResult.satisfied()
        return ProbeResult.drifted(f"state: {state}")

    def apply() -> None:
        env.systemctl.mask(unit)

    def revert() -> None:
        env.systemctl.unmask(unit)

    return Part(name=unit, probe=probe, apply=apply, revert=revert)


def unit_enabled_part(
    env: SystemEnv,
    unit: str,
    *,
    start: bool = True,
    missing_is_absent: bool = False,
    reload: bool = False,
) -> Part:
    """
    A unit that must be enabled (unmasking it first when masked).

    missing_is_absent: the unit file is written by an earlier part of the
    same setting, so "not-found" means absent rather than unavailable.
    """

    def probe() -> ProbeResult:
        state = _unit_state(env, unit)
        if state == "not-found":
            if missing_is_absent:
                return ProbeResult.absent()
            raise _unavailable(f"{unit} not found")
        if state == "enabled":
            return ProbeResult.satisfied()
        return ProbeResult.drifted(f"state: {state}")

    def apply() -> None:
        if reload:
            env.systemctl.daemon_reload()
        if env.systemctl.is_enabled(unit) == "masked":
            env.systemctl.unmask(unit)
        env.systemctl.enable(unit, now=start)

    def revert() -> None:
        if env.systemctl.is_enabled(unit) in ("not-found", "disabled"):
            return
        env.systemctl.disable(unit, now=True)

    return Part(name=unit, probe=probe, apply=apply, revert=revert)


# -- kernel ------------------------------------------------------------------


GRUB_DEFAULTS = "/etc/default/grub"


def grub_token_part(env: SystemEnv, token: str) -> Part:
    """A kernel argument in GRUB_CMDLINE_LINUX_DEFAULT."""
    target = env.path(GRUB_DEFAULTS)

    def _text() -> str:
        text = read_text(target)
        if text is None:
            raise _unavailable(f"{GRUB_DEFAULTS} does not exist")
        return text

    def probe() -> ProbeResult:
        tokens = read_tokens(_text())
        if tokens is None:
            return ProbeResult.absent()
        if token in tokens:
            return ProbeResult.satisfied()
        existing = find_key(tokens, token)
        if existing is not None:
            return ProbeResult.drifted(existing)
        return ProbeResult.absent()

    def apply() -> None:
        write_text(target, set_token(_text(), token))

    def revert() -> None:
        text = read_text(target)
        if text is None:
            return
        write_text(target, remove_token(text, token))

    return Part(name=f"{GRUB_DEFAULTS}:{token}", probe=probe, apply=apply, revert=revert)


def sysfs_part(env: SystemEnv, path: str, value: str) -> Part:
    """A live kernel attribute; lost on reboot, re-applied by the monitor."""
    target = env.path(path)

    def probe() -> ProbeResult:
        current = read_attr(target)
        if current is None:
            raise _unavailable(f"{path} does not exist")
        if current == value:
            return ProbeResult.satisfied()
        return ProbeResult.drifted(current)

    def apply() -> None:
        write_attr(target, value)

    return Part(name=path, probe=probe, apply=apply)


NVIDIA_PCI_ATTRS = (("d3cold_allowed", "0"), ("power/control", "on"))


def nvidia_pci_part(env: SystemEnv) -> Part:
    """
    Runtime power management of every present NVIDIA display controller:
    D3cold disallowed and runtime PM pinned on.
    """
    sys_root = env.path("/sys")

    def _mismatches() -> List[Tuple[str, str, str]]:
        devices = display_devices(sys_root, "nvidia")
        if not devices:
            raise _unavailable("no NVIDIA display controller present")
        out = []
        seen = False
        for dev in devices:
            for attr, want in NVIDIA_PCI_ATTRS:
                current = read_attr(dev.path / attr)
                if current is None:
                    continue
                seen = True
                if current != want:
                    out.append((dev.slot, attr, current))
        if not seen:
            raise _unavailable("NVIDIA device exposes no runtime power attributes")
        return out

    def probe() -> ProbeResult:
        bad = _mismatches()
        if not bad:
            return ProbeResult.satisfied()
        return ProbeResult.drifted(", ".join(f"{slot} {attr}={cur}" for slot, attr, cur in bad))

    def apply() -> None:
        want = dict(NVIDIA_PCI_ATTRS)
        for slot, attr, _ in _mismatches():
            write_attr(sys_root / "bus" / "pci" / "devices" / slot / attr, want[attr])

    return Part(name="/sys/bus/pci/devices/*[nvidia]", probe=probe, apply=apply)
