"""
action_engine/logging_config.py

Logging setup and the stdlib-backed engine logger.
"""
from typing import Any, Mapping, Optional
import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str = "INFO", stream=None) -> None:
    """Configure root logging for the process."""
    logging.basicConfig(
        format=LOG_FORMAT,
        stream=stream or sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )


class StdlibEngineLogger:
    """
    EngineLogger backed by a logging.Logger.

    Fields are attached to the record via `extra` under `fields`, and
    rendered into the message so plain formatters show them too.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("action_engine.dispatch")

    def warn(self, msg: str, fields: Optional[Mapping[str, Any]] = None) -> None:
        self._log(logging.WARNING, msg, fields)

    def error(self, msg: str, fields: Optional[Mapping[str, Any]] = None) -> None:
        self._log(logging.ERROR, msg, fields)

    def _log(self, level: int, msg: str, fields: Optional[Mapping[str, Any]]) -> None:
        fields = dict(fields or {})
        if fields:
            rendered = " ".join(f"{k}={v!r}" for k, v in fields.items())
            msg = f"{msg} [{rendered}]"
        self.logger.log(level, msg, extra={"fields": fields})


__all__ = ["LOG_FORMAT", "setup_logging", "StdlibEngineLogger"]
