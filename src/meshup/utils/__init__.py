"""Utility modules for logging and daemon connections."""
from .connection import RETRYABLE_EXCEPTIONS, with_retry
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    perf_logger,
)

__all__ = [
    "RETRYABLE_EXCEPTIONS",
    "with_retry",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
]
