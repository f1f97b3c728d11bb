"""
Exception types raised while reading and decoding a NAND image.

Consistency problems (parity, unexpected constants, map mismatches) are
never raised. They are reported as findings and the scan carries on.
"""

from enum import Enum
from typing import Optional


class InspectorError(Exception):
    """Base class for all errors raised by bbm_inspector."""


class ImageIOError(InspectorError):
    """
    Reading the image failed.

    Aborts the current stage only; results collected so far are kept.
    """

    def __init__(self, message: str, offset: Optional[int] = None):
        super().__init__(message)
        self.offset = offset


class EndOfDataError(ImageIOError):
    """The cursor reached the end of the image."""

    def __init__(self, offset: int):
        super().__init__(f"Unexpected end of data at offset {offset:08X}", offset)


class FormatErrorReason(Enum):
    """Why header decoding gave up."""
    SIGNATURE_NOT_FOUND = "BBM header signature not found"
    MALFORMED_LAYOUT = "Malformed BBM header layout"


class FormatError(InspectorError):
    """
    The image does not contain a decodable BBM header.

    Fatal to header decoding; the bad-block table stays valid.
    """

    def __init__(self, reason: FormatErrorReason, detail: str = ""):
        message = reason.value if not detail else f"{reason.value}: {detail}"
        super().__init__(message)
        self.reason = reason
