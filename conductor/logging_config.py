"""Structured logging configuration for Conductor."""

import json
import logging
import logging.config
import logging.handlers
import os
from datetime import datetime, timezone
from pathlib import Path

from .config import DEFAULT_LOG_PATH

# Record attributes lifted into "context" when passed through extra=
CONTEXT_FIELDS = ("agent_id", "session_id", "execution_id", "step_id", "request_id", "tool")

# Chatty libraries that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "anthropic", "aiosqlite", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with agent/execution identifiers under "context"."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        context = dict(getattr(record, "context", None) or {})
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                context[name] = value
        if context:
            log_data["context"] = context

        return json.dumps(log_data, default=str)


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
    console: bool = True,
) -> None:
    """
    Setup structured logging for the application.

    Args:
        log_level: Log level name. Defaults to LOG_LEVEL env var or INFO.
        log_file: Rotating log file. Defaults to logs/app.log.
        console: Also write records to stdout.
    """
    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_path = Path(log_file) if log_file else DEFAULT_LOG_PATH
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handlers = {
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(log_path),
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "json",
            "encoding": "utf-8",
        },
    }
    if console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "stream": "ext://sys.stdout",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": JSONFormatter}},
            "handlers": handlers,
            "loggers": {
                name: {"level": "WARNING"} for name in QUIET_LOGGERS if level != "DEBUG"
            },
            "root": {"level": level, "handlers": list(handlers)},
        }
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
