"""Logging configuration for dpmm.

Provides configurable logging with:
- File-based logging with rotation
- Console output for real-time feedback
- Performance timing decorator and context manager

Environment Variables:
    DPMM_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    DPMM_LOG_FILE: Path to log file (default: <cache dir>/dpmm.log)
    DPMM_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    DPMM_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from dpmm.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("switch")
    def switch(self, ...):
        ...

    with timed_section("install", backend="apt", packages=2):
        ...
"""
import functools
import logging
import os
import time
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Optional

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("dpmm.perf")
main_logger = logging.getLogger("dpmm")


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("DPMM_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file(cache_dir: Optional[Path] = None) -> Path:
    """Get log file path from environment."""
    if cache_dir is None:
        from ..config.paths import cache_dir as default_cache_dir
        cache_dir = default_cache_dir()
    path_str = os.environ.get("DPMM_LOG_FILE", str(cache_dir / "dpmm.log"))
    return Path(path_str)


def setup_logging(
    cache_dir: Optional[Path] = None,
    level: Optional[int] = None,
) -> None:
    """Configure logging for the application.

    Console output goes through a short `LEVEL: message` format at the
    requested level. Everything at DEBUG and above also lands in a rotating
    dpmm.log, and timings from `dpmm.perf` go to dpmm-perf.log (and to the
    console when running at DEBUG).

    Safe to call more than once; handlers are replaced, not duplicated.
    """
    log_level = level if level is not None else get_log_level()
    log_file = get_log_file(cache_dir)
    max_bytes = int(os.environ.get("DPMM_LOG_MAX_SIZE", "10")) * 1024 * 1024
    backups = int(os.environ.get("DPMM_LOG_BACKUPS", "5"))

    log_file.parent.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    detail = _rotating_handler(
        log_file,
        "%(asctime)s | %(name)-24s | %(levelname)-7s | %(message)s",
        max_bytes,
        backups,
    )
    perf = _rotating_handler(
        log_file.with_name("dpmm-perf.log"),
        "%(asctime)s | PERF | %(message)s",
        max_bytes,
        backups,
    )

    main_logger.setLevel(logging.DEBUG)  # handlers filter
    _replace_handlers(main_logger, console, detail)

    perf_logger.setLevel(logging.DEBUG)
    perf_logger.propagate = False
    if log_level <= logging.DEBUG:
        _replace_handlers(perf_logger, perf, console)
    else:
        _replace_handlers(perf_logger, perf)

    main_logger.debug(
        f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}"
    )


def _rotating_handler(
    path: Path, fmt: str, max_bytes: int, backups: int
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8"
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _replace_handlers(logger: logging.Logger, *handlers: logging.Handler) -> None:
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    for handler in handlers:
        logger.addHandler(handler)


@contextmanager
def timed_section(operation: str, backend: Optional[str] = None, **extra):
    """Context manager for timing code sections.

    Usage:
        with timed_section("install", backend="apt", packages=3):
            runner.run(argv)
    """
    suffix = "".join(f" | {k}={v}" for k, v in extra.items())
    start = time.perf_counter()

    def line(status: str) -> str:
        ms = (time.perf_counter() - start) * 1000
        return f"{operation:20s} | {backend or 'N/A':15s} | {ms:8.2f}ms | {status}{suffix}"

    try:
        yield
    except Exception as e:
        perf_logger.warning(line(f"FAIL: {e}"))
        raise
    perf_logger.info(line("OK"))


def timed(operation: str, backend: Optional[str] = None):
    """Decorator to log execution time of a function.

    Args:
        operation: Name of the operation (e.g., "switch", "rollback")
        backend: Optional backend name (can also be inferred from self.name)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            name = backend
            if name is None and args and isinstance(getattr(args[0], "name", None), str):
                name = args[0].name
            with timed_section(operation, backend=name):
                return func(*args, **kwargs)

        return wrapper

    return decorator
