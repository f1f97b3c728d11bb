"""
Error handling utilities for the NAND bad-block map inspector.

Turns errno values from opening an image into actionable messages and
maps scan outcomes onto process exit codes.
"""

import errno
from typing import Optional

# Process exit codes
EXIT_OK = 0
EXIT_NO_IMAGE = 1
EXIT_HEADER_ABORTED = 2


def handle_image_error(error_code: Optional[int], operation: str = "open image") -> str:
    """
    Context-aware message for a failure to access an image file.

    Args:
        error_code: errno value (e.g., errno.ENOENT), or None if unknown
        operation: Description of the operation that failed

    Returns:
        Formatted error message with troubleshooting guidance

    Example:
        >>> print(handle_image_error(errno.ENOENT, "open dump.bin"))
        open dump.bin failed: File does not exist - check the image path
    """
    error_messages = {
        errno.ENOENT: "File does not exist - check the image path",
        errno.EACCES: (
            "Permission denied. Check:\n"
            "1. File permissions allow reading?\n"
            "2. Image is not locked by the dump tool?"
        ),
        errno.EISDIR: "Path is a directory - select the image file itself",
        errno.EIO: "I/O error - the medium holding the image may be damaged",
        errno.EMFILE: "Too many open files",
        errno.ENAMETOOLONG: "File name too long",
    }

    if error_code is None:
        return f"{operation} failed: Unknown error"

    code_name = errno.errorcode.get(error_code, 'UNKNOWN')
    message = error_messages.get(error_code, f"Unknown error {error_code}: {code_name}")
    return f"{operation} failed: {message}"


def get_exit_code(result) -> int:
    """
    Process exit code for a finished scan.

    Args:
        result: ScanResult

    Returns:
        EXIT_HEADER_ABORTED if header decoding aborted, else EXIT_OK
    """
    if result.header_aborted:
        return EXIT_HEADER_ABORTED
    return EXIT_OK
