"""Utility modules for logging, auditing and retries."""
from .audit_log import (
    CommandRecord,
    get_recent_changes,
    log_command,
    setup_audit_logging,
)
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    perf_logger,
)
from .fileio import atomic_write
from .retry import with_retry

__all__ = [
    "CommandRecord",
    "get_recent_changes",
    "log_command",
    "setup_audit_logging",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
    "with_retry",
    "atomic_write",
]
