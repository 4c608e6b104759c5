"""Logging configuration for the meshup client.

Provides configurable logging with:
- File-based logging with rotation
- Console output for debugging (quiet by default, the CLI talks to the user)
- Timing decorators for daemon round-trips

Environment Variables:
    MESHUP_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: WARNING)
    MESHUP_LOG_FILE: Path to log file (default: ~/.meshup/meshup.log)
    MESHUP_LOG_MAX_SIZE: Max log file size in MB (default: 5)
    MESHUP_LOG_BACKUPS: Number of backup files to keep (default: 3)

Usage:
    from meshup.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("status")
    async def status(self):
        ...
"""
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Optional

# Timing logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("meshup.perf")
main_logger = logging.getLogger("meshup")


def get_log_level() -> int:
    """Get console log level from environment."""
    level_str = os.environ.get("MESHUP_LOG_LEVEL", "WARNING").upper()
    return getattr(logging, level_str, logging.WARNING)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".meshup" / "meshup.log"
    path_str = os.environ.get("MESHUP_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (WARNING+ by default, DEBUG with verbose)
    - File handler with rotation (DEBUG level - captures everything)

    A log file that can't be created is not fatal; the client still runs
    with console logging only.
    """
    log_level = logging.DEBUG if verbose else get_log_level()
    log_file = get_log_file()
    max_size_mb = int(os.environ.get("MESHUP_LOG_MAX_SIZE", "5"))
    backup_count = int(os.environ.get("MESHUP_LOG_BACKUPS", "3"))

    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-22s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(main_format)

    root_logger = logging.getLogger("meshup")
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.addHandler(console_handler)

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8"
        )
    except OSError as e:
        root_logger.debug(f"File logging disabled: {e}")
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(main_format)
        root_logger.addHandler(file_handler)

    root_logger.debug(f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def timed(operation: str):
    """Decorator to log execution time of a coroutine.

    Usage:
        @timed("edit_prefs")
        async def edit_prefs(self, mp):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                perf_logger.debug(f"{operation:20s} | {_elapsed_ms(start):8.2f}ms | FAIL: {e}")
                raise
            perf_logger.debug(f"{operation:20s} | {_elapsed_ms(start):8.2f}ms | OK")
            return result

        return async_wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, **extra):
    """Async context manager for timing code sections.

    Usage:
        async with timed_section("handshake", mode="full_start"):
            await watcher.run(...)
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""
    status: Optional[str] = None
    try:
        yield
        status = "OK"
    except BaseException as e:
        status = f"FAIL: {e!r}"
        raise
    finally:
        msg = f"{operation:20s} | {_elapsed_ms(start):8.2f}ms | {status}"
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.debug(msg)
