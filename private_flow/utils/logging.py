"""
Log setup for private flow lookups.

Lookup runs are read either by a person at a terminal or by a log shipper
collecting JSON lines. `configure_logging` installs one root stream handler in
the chosen shape; modules only ever call `get_logger(__name__)`.

Fields given through `extra=` (lookup name, block number, row counts) become
top-level keys of each JSON line. Bytes hashes are written as their `str()`.

Example:
    from private_flow.utils.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_logs=True)
    log = get_logger(__name__)
    log.info("lookup done", extra={"block_number": 100, "rows": 2})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
CONSOLE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Attributes present on every LogRecord; anything else arrived through `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "extra"}


def _json_formatter(record: logging.LogRecord) -> str:
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    payload.update(
        (key, value)
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    )
    # extra={"extra": {...}} is flattened too.
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        payload.update(nested)
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, `extra=` fields included."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """
    Route all records through a single stderr handler.

    Parameters
    ----------
    level : str
        Level name applied to both the root logger and its handler.
    json_logs : bool
        Emit JSON lines instead of the pipe-separated console format.

    Loggers created before this call keep working.
    """
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {"format": CONSOLE_FORMAT, "datefmt": CONSOLE_DATEFMT},
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if json_logs else "console",
                    "level": level,
                }
            },
            "root": {"handlers": ["default"], "level": level},
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "configure_logging", "get_logger"]
