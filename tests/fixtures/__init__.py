"""
Test fixtures for the NAND BBM inspector.

Provides synthetic NAND images and BBM headers for testing without
real device dumps.
"""

from tests.fixtures.nand_images import (
    GEOMETRY,
    LOW_HEADER_BLOCK,
    HIGH_HEADER_BLOCK,
    LOW_HEADER_OFFSET,
    HIGH_HEADER_OFFSET,
    STANDARD_BAD_BLOCKS,
    replacement,
    standard_map,
    encode_bbm_header,
    standard_headers,
    build_image,
    build_standard_image,
    make_header,
    map_with,
)

__all__ = [
    "GEOMETRY",
    "LOW_HEADER_BLOCK",
    "HIGH_HEADER_BLOCK",
    "LOW_HEADER_OFFSET",
    "HIGH_HEADER_OFFSET",
    "STANDARD_BAD_BLOCKS",
    "replacement",
    "standard_map",
    "encode_bbm_header",
    "standard_headers",
    "build_image",
    "build_standard_image",
    "make_header",
    "map_with",
]
