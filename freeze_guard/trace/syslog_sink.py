from __future__ import annotations

import logging
import logging.handlers
from typing import Optional

_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
}


class SyslogSink:
    """
    Forwards operator-facing messages to syslog under a fixed ident,
    so `journalctl -t <ident>` shows them.

    Best effort: when no syslog socket is reachable the sink disables itself.
    """

    def __init__(self, ident: str = "freeze-guard", *, address: str = "/dev/log", handler: Optional[logging.Handler] = None):
        self.ident = ident
        self._logger = logging.getLogger("freeze_guard.syslog.{}".format(ident))
        self._logger.propagate = False
        self._logger.setLevel(logging.INFO)
        self.enabled = True
        if handler is None:
            try:
                handler = logging.handlers.SysLogHandler(
                    address=address, facility=logging.handlers.SysLogHandler.LOG_USER
                )
            except OSError:
                self.enabled = False
                return
            handler.setFormatter(logging.Formatter("{}: %(message)s".format(ident)))
        for h in list(self._logger.handlers):
            self._logger.removeHandler(h)
            h.close()
        self._logger.addHandler(handler)

    def log(self, severity: str, message: str) -> None:
        if not self.enabled:
            return
        self._logger.log(_LEVELS.get(severity, logging.INFO), message)

    def close(self) -> None:
        for h in list(self._logger.handlers):
            self._logger.removeHandler(h)
            h.close()
        self.enabled = False
