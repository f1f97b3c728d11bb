"""
NAND device geometry for bad-block map inspection.

This module describes the physical layout of the NAND flash device whose
dump is being inspected. The geometry is fixed configuration: it is never
detected or negotiated from the image itself.
"""

from dataclasses import dataclass
from typing import Optional


# NAND512W3A2C specifications
NUMBER_OF_BLOCKS = 4096
PAGES_PER_BLOCK = 32
BYTES_PER_PAGE_MAIN = 512
BYTES_PER_PAGE_SPARE = 16
FACTORY_MARKER_SPARE_BYTE = 5  # 6th byte of the spare area of page 0
RESERVED_BLOCKS = 96           # FlashFX replacement area at the end of the device
ERASED_BYTE = 0xFF


# =============================================================================
# Device Geometry Data Class
# =============================================================================


@dataclass(frozen=True)
class DeviceGeometry:
    """
    Physical layout of a NAND flash device dump.

    Every page is stored as its main area followed by its spare area, so
    a block in the dump occupies pages_per_block * (main + spare) bytes.

    Attributes:
        number_of_blocks: Erase blocks on the device (4096)
        pages_per_block: Pages in each block (32)
        bytes_per_page_main: Main-area bytes per page (512)
        bytes_per_page_spare: Spare-area bytes per page (16)
        factory_marker_spare_byte: Index of the factory bad-block marker
            inside the spare area of page 0 (5)
        reserved_blocks: Blocks set aside at the end of the device for
            bad-block replacement (96)

    Example:
        >>> geometry = get_standard_nand512_geometry()
        >>> geometry.bytes_per_block
        16896
        >>> geometry.marker_offset(3)
        51205
    """
    number_of_blocks: int = NUMBER_OF_BLOCKS
    pages_per_block: int = PAGES_PER_BLOCK
    bytes_per_page_main: int = BYTES_PER_PAGE_MAIN
    bytes_per_page_spare: int = BYTES_PER_PAGE_SPARE
    factory_marker_spare_byte: int = FACTORY_MARKER_SPARE_BYTE
    reserved_blocks: int = RESERVED_BLOCKS

    @property
    def bytes_per_page(self) -> int:
        """Bytes per page including the spare area."""
        return self.bytes_per_page_main + self.bytes_per_page_spare

    @property
    def bytes_per_block(self) -> int:
        """Bytes per block including all spare areas."""
        return self.pages_per_block * self.bytes_per_page

    @property
    def total_bytes(self) -> int:
        """Expected size of a full device dump."""
        return self.number_of_blocks * self.bytes_per_block

    @property
    def factory_marker_offset(self) -> int:
        """Offset of the factory bad-block marker within a block."""
        return self.bytes_per_page_main + self.factory_marker_spare_byte

    @property
    def reserved_area_start(self) -> int:
        """First block index of the replacement area."""
        return self.number_of_blocks - self.reserved_blocks

    def block_offset(self, block_index: int) -> int:
        """Absolute offset of the first byte of a block."""
        return block_index * self.bytes_per_block

    def marker_offset(self, block_index: int) -> int:
        """Absolute offset of the factory bad-block marker of a block."""
        return self.block_offset(block_index) + self.factory_marker_offset

    def block_of(self, offset: int) -> int:
        """Block index containing an absolute offset."""
        return offset // self.bytes_per_block

    def reserved_block_for_slot(self, map_index: int) -> int:
        """
        Block index described by a replacement-map slot.

        Slots are numbered from the end of the device, so slot 0 is the
        last block and slot 95 the first block of the reserved area.
        """
        return self.reserved_area_start + (self.reserved_blocks - 1 - map_index)

    def is_nand512(self) -> bool:
        """Check if geometry matches the NAND512W3A2C layout."""
        return (
            self.number_of_blocks == NUMBER_OF_BLOCKS and
            self.pages_per_block == PAGES_PER_BLOCK and
            self.bytes_per_page_main == BYTES_PER_PAGE_MAIN and
            self.bytes_per_page_spare == BYTES_PER_PAGE_SPARE
        )

    def __str__(self) -> str:
        capacity_mb = self.total_bytes / (1024 * 1024)
        return (
            f"DeviceGeometry("
            f"{self.number_of_blocks} blocks x {self.pages_per_block} pages, "
            f"{self.bytes_per_page_main}+{self.bytes_per_page_spare}B/page, "
            f"{capacity_mb:.2f}MB)"
        )


# =============================================================================
# Geometry Helpers
# =============================================================================


def get_standard_nand512_geometry() -> DeviceGeometry:
    """
    Get the NAND512W3A2C geometry.

    Returns:
        DeviceGeometry with the standard 4096-block layout
    """
    return DeviceGeometry()


def validate_image_size(geometry: DeviceGeometry,
                        image_size: int) -> tuple[bool, Optional[str]]:
    """
    Check that an image has the size of a full device dump.

    Args:
        geometry: Device geometry
        image_size: Size of the image in bytes

    Returns:
        Tuple of (valid: bool, error_message: str or None)

    Example:
        >>> valid, error = validate_image_size(geometry, 1024)
        >>> valid
        False
    """
    if image_size == geometry.total_bytes:
        return (True, None)

    whole_blocks, remainder = divmod(image_size, geometry.bytes_per_block)
    return (
        False,
        f"Image is {image_size:,} bytes, expected {geometry.total_bytes:,} "
        f"({whole_blocks} whole blocks, {remainder} trailing bytes)"
    )


def get_geometry_summary(geometry: DeviceGeometry) -> str:
    """
    Get a human-readable summary of the device geometry.

    Args:
        geometry: DeviceGeometry object

    Returns:
        Multi-line string with geometry details
    """
    return f"""Device Geometry Summary
=======================
Blocks: {geometry.number_of_blocks}
Pages/Block: {geometry.pages_per_block}
Bytes/Page: {geometry.bytes_per_page} ({geometry.bytes_per_page_main} main + {geometry.bytes_per_page_spare} spare)
Bytes/Block: {geometry.bytes_per_block:,}
Factory Marker: byte {geometry.factory_marker_offset} of each block
Reserved Area: blocks {geometry.reserved_area_start}-{geometry.number_of_blocks - 1}
Total Size: {geometry.total_bytes:,} bytes"""
