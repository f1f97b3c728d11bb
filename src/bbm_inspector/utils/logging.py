"""
Logging configuration for the NAND bad-block map inspector.

Provides file-based DEBUG logging plus a console handler, with system
information captured on startup for troubleshooting.
"""

import logging
import sys
import platform
from pathlib import Path
from typing import List, Optional

# Handlers installed by the last setup_logging call
_installed_handlers: List[logging.Handler] = []


def setup_logging(log_file: Optional[str] = "bbm_inspector.log",
                  level: int = logging.DEBUG,
                  console_level: int = logging.WARNING) -> None:
    """
    Configure structured logging for the application.

    The report itself goes to the console through the report sinks, so the
    console log handler only shows warnings and errors unless asked for
    more.

    Args:
        log_file: Path to log file, or None to skip the file log
        level: File logging level (default: logging.DEBUG)
        console_level: Console logging level (default: logging.WARNING)

    Example:
        >>> setup_logging("logs/bbm_inspector.log", console_level=logging.INFO)
        >>> logging.info("Scan started")
    """
    root = logging.getLogger()
    root.setLevel(min(level, console_level))

    # Replace handlers from an earlier call instead of stacking them
    while _installed_handlers:
        handler = _installed_handlers.pop()
        root.removeHandler(handler)
        handler.close()

    if log_file:
        # Create logs directory if it doesn't exist
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        root.addHandler(file_handler)
        _installed_handlers.append(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))
    root.addHandler(console_handler)
    _installed_handlers.append(console_handler)

    # Log system information on startup
    log_system_info()


def log_system_info() -> None:
    """
    Log system information for debugging purposes.
    """
    from bbm_inspector import __version__

    logging.info("=" * 60)
    logging.info(f"NAND BBM Inspector {__version__} - System Information")
    logging.info("=" * 60)
    logging.info(f"Platform: {platform.system()} {platform.release()}")
    logging.info(f"Machine: {platform.machine()}")
    logging.info(f"Python version: {sys.version}")
    logging.info(f"Python executable: {sys.executable}")
    logging.info("=" * 60)


def log_operation(operation: str, details: str, level: int = logging.INFO) -> None:
    """
    Log an operation with details.

    Args:
        operation: Name of the operation (e.g., "locate_bad_blocks")
        details: Additional details about the operation
        level: Logging level (default: logging.INFO)

    Example:
        >>> log_operation("open_image", "dump.bin (read-only)")
    """
    logging.log(level, f"{operation}: {details}")


def log_performance(operation: str, duration: float, **metrics) -> None:
    """
    Log performance metrics for an operation.

    Args:
        operation: Name of the operation
        duration: Duration in seconds
        **metrics: Additional performance metrics (e.g., blocks=4096)

    Example:
        >>> log_performance("scan", 3.2, blocks=4096, failed_checks=0)
    """
    metrics_str = ", ".join(f"{k}={v}" for k, v in metrics.items())
    logging.info(f"Performance - {operation}: {duration:.2f}s, {metrics_str}")
