"""
Logging for the reconstruction pipeline.

Every record passing through a handler installed by
:meth:`LoggerFactory.setup` is tagged with the pipeline stage that was
active when it was emitted (``-`` outside a run). The stage lives in a
context variable, so it follows ``asyncio`` tasks and the worker threads
started through ``asyncio.to_thread``.
"""

from __future__ import annotations

import contextvars
import functools
import inspect
import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

NO_STAGE = "-"
DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(stage)-16s | %(name)s:%(lineno)d | %(message)s"

_current_stage: contextvars.ContextVar[str] = contextvars.ContextVar("facerecon_stage", default=NO_STAGE)


def current_stage() -> str:
    return _current_stage.get()


@contextmanager
def stage_context(stage: str) -> Iterator[None]:
    """Tag log records emitted inside the block with ``stage``."""
    token = _current_stage.set(stage)
    try:
        yield
    finally:
        _current_stage.reset(token)


class StageFilter(logging.Filter):
    """Adds ``record.stage`` so formats may reference ``%(stage)s``."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "stage"):
            record.stage = current_stage()
        return True


class ColoredFormatter(logging.Formatter):
    """Console formatter that colours the level name."""

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        record.levelname = f"{self.COLORS.get(record.levelno, self.RESET)}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            # Other handlers format the same record
            record.levelname = levelname


class LoggerFactory:
    """
    Configures the root handlers once and hands out module loggers.

    Loggers obtained before :meth:`setup` are ordinary ``logging`` loggers
    and start writing through the configured handlers once it runs.
    """

    _loggers: dict[str, logging.Logger] = {}
    _level: int = logging.INFO
    _configured: bool = False
    log_file: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        log_dir: Optional[Path] = None,
        level: int = logging.INFO,
        enable_file_logging: bool = False,
        log_format: Optional[str] = None
    ) -> Optional[Path]:
        """
        Install console (and optionally file) handlers on the root logger.

        Args:
            log_dir: Directory for run logs (default: ./logs)
            level: Logging level
            enable_file_logging: Also write ``facerecon_<timestamp>.log``
            log_format: Format string; may use ``%(stage)s``

        Returns:
            Path of the log file, if one was opened
        """
        fmt = log_format or DEFAULT_FORMAT
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        root.setLevel(level)

        handlers: list[logging.Handler] = []
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(ColoredFormatter(fmt))
        handlers.append(console)

        cls.log_file = None
        if enable_file_logging:
            directory = Path(log_dir) if log_dir is not None else Path.cwd() / "logs"
            directory.mkdir(parents=True, exist_ok=True)
            cls.log_file = directory / f"facerecon_{datetime.now():%Y%m%d_%H%M%S}.log"
            file_handler = logging.FileHandler(cls.log_file, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(fmt))
            handlers.append(file_handler)

        for handler in handlers:
            handler.setLevel(level)
            handler.addFilter(StageFilter())
            root.addHandler(handler)

        cls._level = level
        cls._configured = True
        for logger in cls._loggers.values():
            logger.setLevel(level)
        return cls.log_file

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        logger = cls._loggers.get(name)
        if logger is None:
            logger = logging.getLogger(name)
            if cls._configured:
                logger.setLevel(cls._level)
            cls._loggers[name] = logger
        return logger


def log_execution_time(logger: Optional[logging.Logger] = None):
    """
    Log how long the decorated call took (DEBUG) or when it failed (ERROR).

    Works for coroutine functions too; their timing covers the awaited work.

    Args:
        logger: Target logger; defaults to the decorated function's module logger
    """
    def decorator(func):
        log = logger or LoggerFactory.get_logger(func.__module__)

        def report(start: float, error: Optional[BaseException] = None) -> None:
            elapsed = time.perf_counter() - start
            if error is None:
                log.debug(f"{func.__name__} completed in {elapsed:.4f}s")
            else:
                log.error(f"{func.__name__} failed after {elapsed:.4f}s: {error}")

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    report(start, e)
                    raise
                report(start)
                return result

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                report(start, e)
                raise
            report(start)
            return result

        return wrapper
    return decorator


def get_logger(name: str) -> logging.Logger:
    """Module logger (``get_logger(__name__)``)."""
    return LoggerFactory.get_logger(name)
