from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from .syslog_sink import SyslogSink
from .trace_store_jsonl import TraceStoreJSONL


class TraceEmitter:
    def __init__(self, store: Optional[TraceStoreJSONL], run_id: str, *, syslog: Optional[SyslogSink] = None):
        self._store = store
        self._run_id = run_id
        self._syslog = syslog

    @property
    def run_id(self) -> str:
        return self._run_id

    def emit(
        self,
        event_type: str,
        *,
        setting_id: str | None = None,
        mode: str | None = None,
        severity: str | None = None,
        message: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        event: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "run_id": self._run_id,
            "event_type": event_type,
        }
        if setting_id is not None:
            event["setting_id"] = setting_id
        if mode is not None:
            event["mode"] = mode
        if severity is not None:
            event["severity"] = severity
        if message is not None:
            event["message"] = message
        if data is not None:
            event["data"] = data

        if self._store is not None:
            self._store.append(event)
        if self._syslog is not None and severity is not None and message is not None:
            self._syslog.log(severity, message)
