"""Structured logging configuration."""

import json
import logging
from datetime import datetime, timezone
from typing import Optional, Set

_configured_loggers: Set[str] = set()
_default_level: int = logging.INFO


class JSONFormatter(logging.Formatter):
    """One JSON object per record: time, level, logger, message and origin."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _resolve_level(level: str) -> int:
    resolved = getattr(logging, level.upper(), None)
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get configured logger instance.

    A logger seen for the first time gets the JSON console handler and the
    level last applied by set_log_level(). An explicit ``level`` always wins.
    """
    logger = logging.getLogger(name)

    if name not in _configured_loggers:
        if not logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(JSONFormatter())
            logger.addHandler(console_handler)
        logger.setLevel(_default_level)
        _configured_loggers.add(name)

    if level is not None:
        logger.setLevel(_resolve_level(level))

    return logger


def set_log_level(level: str) -> None:
    """Apply a level to every logger handed out by get_logger(), now and later."""
    global _default_level
    _default_level = _resolve_level(level)

    for name in _configured_loggers:
        logging.getLogger(name).setLevel(_default_level)
