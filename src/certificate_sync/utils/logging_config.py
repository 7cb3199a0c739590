"""Logging configuration for certificate-sync.

Provides configurable logging with:
- File-based logging with rotation
- Console output for interactive runs
- Timing helpers for the sync phases

Environment Variables:
    CERTSYNC_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    CERTSYNC_LOG_FILE: Path to log file (default: ~/.certificate-sync/certificate-sync.log)
    CERTSYNC_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    CERTSYNC_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from certificate_sync.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("match")
    def match(self, stores, rules):
        ...

    # Or use context manager for sections:
    with timed_section("owner_acl_pass", store="/path/to/store", identities=3):
        ...
"""
import functools
import logging
import os
import time
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Any

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("certificate_sync.perf")
main_logger = logging.getLogger("certificate_sync")


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("CERTSYNC_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".certificate-sync" / "certificate-sync.log"
    path_str = os.environ.get("CERTSYNC_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging(level: Optional[int] = None) -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (INFO+ by default, respects CERTSYNC_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Performance logger for phase timings

    Args:
        level: Console level override (e.g. from a --verbose flag)
    """
    log_level = level if level is not None else get_log_level()
    log_file = get_log_file()
    max_size_mb = int(os.environ.get("CERTSYNC_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("CERTSYNC_LOG_BACKUPS", "5"))

    # Create log directory if needed
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Main format: timestamp - logger - level - message
    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-40s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Performance format: focused on timing
    perf_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | PERF | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(main_format)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(main_format)

    # Performance file handler - separate file for easy analysis
    perf_log_file = log_file.parent / "certificate-sync-perf.log"
    perf_handler = RotatingFileHandler(
        perf_log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    perf_handler.setLevel(logging.DEBUG)
    perf_handler.setFormatter(perf_format)

    # Configure package logger
    main_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    main_logger.handlers.clear()
    main_logger.addHandler(console_handler)
    main_logger.addHandler(file_handler)

    # Performance logger writes to its own file plus the console
    perf_logger.setLevel(logging.DEBUG)
    perf_logger.propagate = False
    perf_logger.handlers.clear()
    perf_logger.addHandler(perf_handler)
    perf_logger.addHandler(console_handler)

    main_logger.info(f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}")
    perf_logger.debug(f"Performance logging to: {perf_log_file}")


def _format_timing(operation: str, store: Optional[str], elapsed: float, outcome: str, extra: str = "") -> str:
    msg = f"{operation:20s} | {store or 'N/A':30s} | {elapsed:8.2f}ms | {outcome}"
    if extra:
        msg += f" | {extra}"
    return msg


def timed(operation: str, store: Optional[str] = None):
    """Decorator to log execution time of a function.

    Args:
        operation: Name of the operation (e.g., "match", "export")
        store: Optional store path (can also be inferred from self.path)

    Usage:
        @timed("query_identities")
        def query_identities(self):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            store_path = store
            if store_path is None and args and hasattr(args[0], "path"):
                store_path = str(args[0].path)

            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.info(_format_timing(operation, store_path, elapsed, "OK"))
                return result
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_format_timing(operation, store_path, elapsed, f"FAIL: {e}"))
                raise

        return wrapper

    return decorator


@contextmanager
def timed_section(operation: str, store: Optional[str] = None, **extra):
    """Context manager for timing code sections.

    Args:
        operation: Name of the operation
        store: Store path, if the section concerns a single store
        **extra: Additional context to log

    Usage:
        with timed_section("export_pass", exports=4):
            ...
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
        elapsed = (time.perf_counter() - start) * 1000
        perf_logger.info(_format_timing(operation, store, elapsed, "OK", extra_str))
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        perf_logger.warning(_format_timing(operation, store, elapsed, f"FAIL: {e}", extra_str))
        raise
