"""
Logging setup for the wizard session engine.

Records carry structured fields in `record.extra_data`. The active session
id, when bound through `session_id_var` or a ContextLogger, is attached to
every record so a resumed session can be followed across store calls.
"""

import json
import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, MutableMapping, Optional, Tuple

session_id_var: ContextVar[Optional[str]] = ContextVar('session_id', default=None)

_NOISY_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "aiosqlite", "asyncio")


def _record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    fields = dict(getattr(record, 'extra_data', None) or {})
    bound_session = session_id_var.get()
    if bound_session and 'session_id' not in fields:
        fields['session_id'] = bound_session
    return fields


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(_record_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ReadableFormatter(logging.Formatter):
    """Single-line console format for development."""

    LEVEL_COLORS = {
        'DEBUG': '36',
        'INFO': '32',
        'WARNING': '33',
        'ERROR': '31',
        'CRITICAL': '35',
    }

    def __init__(self, use_color: bool = False):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]
        level = f"{record.levelname:<8}"
        if self.use_color and record.levelname in self.LEVEL_COLORS:
            level = f"\033[{self.LEVEL_COLORS[record.levelname]}m{level}\033[0m"

        parts = [f"{stamp} {level} {record.name}: {record.getMessage()}"]
        fields = _record_fields(record)
        if fields:
            parts.append(' '.join(f"{key}={value}" for key, value in fields.items()))

        line = ' | '.join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class ContextLogger(logging.LoggerAdapter):
    """Adapter that folds its bound fields into each record's extra_data."""

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> Tuple[str, MutableMapping[str, Any]]:
        extra = dict(kwargs.get('extra') or {})
        fields = dict(extra.get('extra_data') or {})
        for key, value in self.extra.items():
            fields.setdefault(key, value)
        extra['extra_data'] = fields
        kwargs['extra'] = extra
        return msg, kwargs


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[Path] = None,
) -> None:
    """
    Install root handlers.

    Args:
        level: Root log level name
        json_output: Use JsonFormatter on stdout instead of ReadableFormatter
        log_file: Also write JSON lines to this file
    """
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    if json_output:
        console.setFormatter(JsonFormatter())
    else:
        console.setFormatter(ReadableFormatter(use_color=sys.stdout.isatty()))
    root.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JsonFormatter())
        root.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_logging_from_settings(settings=None) -> None:
    """Configure logging from APP_LOG_LEVEL / APP_LOG_JSON."""
    if settings is None:
        from config.settings import get_settings
        settings = get_settings()
    configure_logging(level=settings.log_level, json_output=settings.log_json)


def get_logger(name: str, **extra) -> ContextLogger:
    """Get a logger that stamps `extra` onto every record."""
    return ContextLogger(logging.getLogger(name), extra)


def log_store_call(name: Optional[str] = None) -> Callable:
    """
    Decorator for async store methods: logs duration and outcome at DEBUG.

    Exceptions propagate unchanged.
    """
    def decorator(func: Callable) -> Callable:
        operation = name or func.__name__
        logger = logging.getLogger("wizard.store")

        @wraps(func)
        async def wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.debug(
                    f"{operation} raised {type(e).__name__}",
                    extra={'extra_data': {
                        'operation': operation,
                        'duration_ms': round((time.perf_counter() - started) * 1000, 1),
                    }},
                )
                raise
            logger.debug(
                f"{operation} ok",
                extra={'extra_data': {
                    'operation': operation,
                    'duration_ms': round((time.perf_counter() - started) * 1000, 1),
                }},
            )
            return result

        return wrapper
    return decorator
