"""Structured logging setup for the damage assessment pipeline."""

import functools
import inspect
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Optional, Dict, Any, Iterator
from pathlib import Path


DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(session_id)s] %(message)s"


# Per-task context fields; each asyncio task and to_thread worker sees its own copy
_log_fields: ContextVar[Optional[Dict[str, Any]]] = ContextVar("damage_detect_log_fields", default=None)


class ContextFilter(logging.Filter):
    """Add context information to log records."""

    def __init__(self, defaults: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.defaults: Dict[str, Any] = dict(defaults or {"session_id": "-"})

    @property
    def context(self) -> Dict[str, Any]:
        """Context fields active in the current task or thread."""
        return dict(_log_fields.get() or {})

    def filter(self, record: logging.LogRecord) -> bool:
        """Add context fields to log record."""
        for key, value in self.defaults.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        for key, value in self.context.items():
            setattr(record, key, value)
        return True

    def set_context(self, **kwargs):
        """Set context fields for logging."""
        _log_fields.set({**self.context, **kwargs})


# Global context filter instance
_context_filter = ContextFilter()


def setup_logging(
    level: str = "INFO",
    log_format: str = DEFAULT_LOG_FORMAT,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up structured logging with optional file output.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format string for log messages; may reference
            ``%(session_id)s``, which defaults to ``-`` outside a session
        log_file: Optional path to log file

    Returns:
        Configured root logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers
    root_logger.handlers.clear()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(_context_filter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(_context_filter)
        root_logger.addHandler(file_handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def set_context(**kwargs):
    """
    Set context fields for all subsequent log messages.

    Example:
        set_context(session_id="3f2a9c")
        logger.info("Analyzing frame 2")  # Will include session_id

    Args:
        **kwargs: Context key-value pairs
    """
    _context_filter.set_context(**kwargs)


@contextmanager
def log_context(**context_kwargs) -> Iterator[None]:
    """
    Context manager form of ``with_context`` for values only known at runtime.

    Example:
        with log_context(session_id=session.session_id):
            logger.info("Frames extracted")

    Args:
        **context_kwargs: Context key-value pairs
    """
    token = _log_fields.set({**_context_filter.context, **context_kwargs})
    try:
        yield
    finally:
        _log_fields.reset(token)


def with_context(**context_kwargs):
    """
    Decorator to add context to all log messages within a function.

    Works for plain functions and coroutine functions alike; the previous
    context is restored when the call returns.

    Example:
        @with_context(component="batch")
        async def analyze_all(self):
            logger.info("Starting")  # Includes component

    Args:
        **context_kwargs: Context key-value pairs
    """
    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                with log_context(**context_kwargs):
                    return await func(*args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with log_context(**context_kwargs):
                return func(*args, **kwargs)

        return wrapper
    return decorator
