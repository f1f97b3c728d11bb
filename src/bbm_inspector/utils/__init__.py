"""
Utility functions for the NAND bad-block map inspector.

This module provides logging setup, error messages and exit codes,
resource context managers and the JSON export of scan results.
"""

from bbm_inspector.utils.error_handler import (
    handle_image_error,
    get_exit_code,
    EXIT_OK,
    EXIT_NO_IMAGE,
    EXIT_HEADER_ABORTED,
)

from bbm_inspector.utils.logging import (
    setup_logging,
    log_system_info,
    log_operation,
    log_performance,
)

from bbm_inspector.utils.context_managers import (
    ImageSourceContext,
    ReportContext,
    report_path_for,
)

from bbm_inspector.utils.partial_results import (
    scan_result_to_dict,
    save_scan_results,
    load_scan_results,
)

__all__ = [
    # Error handling
    "handle_image_error",
    "get_exit_code",
    "EXIT_OK",
    "EXIT_NO_IMAGE",
    "EXIT_HEADER_ABORTED",

    # Logging
    "setup_logging",
    "log_system_info",
    "log_operation",
    "log_performance",

    # Context managers
    "ImageSourceContext",
    "ReportContext",
    "report_path_for",

    # Scan results export
    "scan_result_to_dict",
    "save_scan_results",
    "load_scan_results",
]
