"""
Logging utilities for s3upload.

Console logging for interactive use (colorized through coloredlogs), JSON
records for CI runs, a per-session correlation id and an entry/exit
decorator used on the public resolution and upload entry points.

Features:
    - Colorized text output when running from a terminal
    - JSON output when LOG_FORMAT=json (one object per line)
    - Session id attached to every record of an upload session
    - ENTER/EXIT/ERROR records with duration for decorated functions

Example usage:
    >>> from s3upload.utils.logging import get_logger, log_function_call
    >>>
    >>> logger = get_logger(__name__)
    >>>
    >>> @log_function_call
    >>> def resolve(path: str) -> str:
    >>>     logger.info(f"Resolving {path}")
    >>>     return path
"""

import functools
import json
import logging
import os
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, TypeVar, cast

import coloredlogs

F = TypeVar("F", bound=Callable[..., Any])

# One id per upload session, shared by every record logged while it runs
_session_id: ContextVar[Optional[str]] = ContextVar("session_id", default=None)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else came in through extra=
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


# ============================================================================
# Session Id
# ============================================================================

def get_session_id() -> str:
    """
    Get the current session id, creating one if none is set.

    Returns:
        Session id of the running upload session
    """
    session_id = _session_id.get()
    if session_id is None:
        session_id = uuid.uuid4().hex[:12]
        _session_id.set(session_id)
    return session_id


def new_session_id() -> str:
    """Start a new session id for the current context and return it."""
    session_id = uuid.uuid4().hex[:12]
    _session_id.set(session_id)
    return session_id


def clear_session_id() -> None:
    """Clear session id for current context."""
    _session_id.set(None)


# ============================================================================
# JSON Formatter
# ============================================================================

class JSONFormatter(logging.Formatter):
    """
    Formats records as single-line JSON objects.

    Example output:
        {"timestamp": "2026-10-19T10:30:15.123456Z", "level": "INFO",
         "logger": "s3upload.uploader.uploader", "message": "Uploaded 2 file(s)",
         "session_id": "3f2a9c0d1e4b", "extra": {"directory": "WEB-INF/classes/a/"}}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "session_id": get_session_id(),
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_data, default=str)


def setup_logging(level: Optional[str] = None, enable_colors: bool = True) -> None:
    """
    Configure the root logger.

    JSON output is selected by LOG_FORMAT=json, otherwise text output is
    colorized with coloredlogs unless enable_colors is False.

    Args:
        level: Logging level name (defaults to LOG_LEVEL env var, then INFO)
        enable_colors: Whether to colorize text output

    Example:
        >>> setup_logging(level="DEBUG")
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    json_output = os.getenv("LOG_FORMAT", "text").lower() == "json"

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if json_output:
        handler = logging.StreamHandler()
        handler.setLevel(log_level)
        handler.setFormatter(JSONFormatter())
        root_logger.addHandler(handler)
    elif enable_colors:
        coloredlogs.install(
            level=log_level,
            fmt=LOG_FORMAT,
            datefmt=LOG_DATE_FORMAT,
            logger=root_logger,
        )
    else:
        handler = logging.StreamHandler()
        handler.setLevel(log_level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def log_function_call(func: F) -> F:
    """
    Decorator logging entry, exit and failure of a function.

    Arguments are logged with repr(); never decorate functions that take
    secret values. Exceptions are logged with traceback at DEBUG level and
    re-raised unchanged, the caller decides how loud a failure is.

    Args:
        func: Function to be decorated

    Returns:
        Wrapped function with logging

    Example:
        >>> @log_function_call
        >>> def read_marker(bucket: str, key: str) -> str:
        >>>     ...
        >>>
        >>> # 2026-10-19 10:30:15 - module - DEBUG - ENTER read_marker(bucket='b', key='k')
        >>> # 2026-10-19 10:30:16 - module - DEBUG - EXIT read_marker -> '1.4.0' (0.31s)
    """
    logger = get_logger(func.__module__)

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        session_id = get_session_id()

        arg_names = func.__code__.co_varnames[: func.__code__.co_argcount]
        args_repr = [f"{name}={value!r}" for name, value in zip(arg_names, args)]
        kwargs_repr = [f"{key}={value!r}" for key, value in kwargs.items()]
        all_args = ", ".join(args_repr + kwargs_repr)

        logger.debug(
            f"ENTER {func.__name__}({all_args})",
            extra={
                "function": func.__name__,
                "session_id": session_id,
                "event": "function_entry",
            },
        )

        start_time = datetime.now()
        try:
            result = func(*args, **kwargs)
        except Exception as error:
            duration = (datetime.now() - start_time).total_seconds()
            logger.debug(
                f"ERROR {func.__name__} raised {type(error).__name__}: {error}",
                extra={
                    "function": func.__name__,
                    "duration_seconds": duration,
                    "session_id": session_id,
                    "event": "function_error",
                    "error_type": type(error).__name__,
                },
                exc_info=True,
            )
            raise

        duration = (datetime.now() - start_time).total_seconds()
        logger.debug(
            f"EXIT {func.__name__} -> {result!r} ({duration:.2f}s)",
            extra={
                "function": func.__name__,
                "duration_seconds": duration,
                "session_id": session_id,
                "event": "function_exit",
            },
        )
        return result

    return cast(F, wrapper)
