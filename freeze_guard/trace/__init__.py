from .trace_emitter import TraceEmitter
from .trace_store_jsonl import TraceStoreJSONL
from .replay import Replay
from .syslog_sink import SyslogSink

__all__ = ["TraceEmitter", "TraceStoreJSONL", "Replay", "SyslogSink"]
