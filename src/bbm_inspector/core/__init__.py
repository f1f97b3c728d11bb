"""
Core functionality for the NAND bad-block map inspector.

This module provides the fixed device geometry, the byte cursor over an
image, the error taxonomy, scan settings and the per-run scan session.
"""

from bbm_inspector.core.geometry import (
    DeviceGeometry,
    get_standard_nand512_geometry,
    validate_image_size,
    get_geometry_summary,
    NUMBER_OF_BLOCKS,
    PAGES_PER_BLOCK,
    BYTES_PER_PAGE_MAIN,
    BYTES_PER_PAGE_SPARE,
    RESERVED_BLOCKS,
    ERASED_BYTE,
)

from bbm_inspector.core.errors import (
    InspectorError,
    ImageIOError,
    EndOfDataError,
    FormatError,
    FormatErrorReason,
)

from bbm_inspector.core.byte_cursor import ByteCursor

from bbm_inspector.core.settings import (
    ScanSettings,
    PatternPass,
    load_settings,
    save_settings,
    get_settings_file,
)

from bbm_inspector.core.session import (
    ScanSession,
    decline_retry,
)

__all__ = [
    # Geometry
    "DeviceGeometry",
    "get_standard_nand512_geometry",
    "validate_image_size",
    "get_geometry_summary",
    "NUMBER_OF_BLOCKS",
    "PAGES_PER_BLOCK",
    "BYTES_PER_PAGE_MAIN",
    "BYTES_PER_PAGE_SPARE",
    "RESERVED_BLOCKS",
    "ERASED_BYTE",

    # Errors
    "InspectorError",
    "ImageIOError",
    "EndOfDataError",
    "FormatError",
    "FormatErrorReason",

    # Byte source
    "ByteCursor",

    # Settings
    "ScanSettings",
    "PatternPass",
    "load_settings",
    "save_settings",
    "get_settings_file",

    # Session
    "ScanSession",
    "decline_retry",
]
