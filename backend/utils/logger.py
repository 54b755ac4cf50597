import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Libraries whose per-request records drown out retry and cache events
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "aiosqlite")


class JSONFormatter(logging.Formatter):
    """One JSON object per record; bound context goes under ``data``."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        fields = getattr(record, "extra_data", None)
        if fields:
            entry["data"] = fields
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ContextLogger:
    """Logger with bound key/value context for structured logging.

    Keyword arguments passed to the level methods are merged into the bound
    context and emitted under ``data`` by :class:`JSONFormatter`::

        log = get_logger("fetcher").with_context(identity=identity)
        log.warning("Retrying read", attempt=2, delay=1.0)
    """

    def __init__(self, name: str, context: dict[str, Any] | None = None):
        self.logger = logging.getLogger(name)
        self._context: dict[str, Any] = dict(context or {})

    def with_context(self, **fields: Any) -> "ContextLogger":
        """Return a child logger that carries ``fields`` on every record"""
        return ContextLogger(self.logger.name, {**self._context, **fields})

    def _log(self, level: int, msg: str, exc_info: Any = None, **fields: Any):
        if not self.logger.isEnabledFor(level):
            return
        data = {**self._context, **fields}
        self.logger.log(
            level,
            msg,
            exc_info=exc_info,
            stacklevel=3,
            extra={"extra_data": data or None},
        )

    def debug(self, msg: str, **fields: Any):
        self._log(logging.DEBUG, msg, **fields)

    def info(self, msg: str, **fields: Any):
        self._log(logging.INFO, msg, **fields)

    def warning(self, msg: str, **fields: Any):
        self._log(logging.WARNING, msg, **fields)

    def error(self, msg: str, **fields: Any):
        self._log(logging.ERROR, msg, **fields)

    def exception(self, msg: str, **fields: Any):
        self._log(logging.ERROR, msg, exc_info=True, **fields)


def setup_logging(level: str = "INFO", json_format: bool = True):
    """Route all records to stdout, as JSON unless ``json_format`` is off"""
    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers = [handler]

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> ContextLogger:
    return ContextLogger(name)


api_logger = get_logger("api")
fetcher_logger = get_logger("fetcher")
