from __future__ import annotations

from typing import Dict, Sequence

from tools.proc.run import Runner, run_command


def query_gpu(fields: Sequence[str], runner: Runner = run_command, *, timeout: float = 20.0) -> Dict[str, str]:
    """
    First GPU's values for `fields` (nvidia-smi --query-gpu names).
    Raises RuntimeError when nvidia-smi fails, e.g. no driver is loaded.
    """
    res = runner(
        ["nvidia-smi", "--query-gpu={}".format(",".join(fields)), "--format=csv,noheader"],
        timeout=timeout,
    )
    if not res.ok:
        raise RuntimeError("nvidia-smi failed: {}".format(res.error_text()))
    lines = [ln for ln in res.stdout.splitlines() if ln.strip()]
    if not lines:
        return {}
    # the last field may itself contain commas (GPU names do)
    values = [v.strip() for v in lines[0].split(",", len(fields) - 1)]
    return dict(zip(fields, values))
