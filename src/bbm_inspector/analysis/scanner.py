"""
Factory bad-block scanning for NAND images.

This module samples the factory bad-block marker of every block and
builds the bad-block table that the BBM headers are checked against:
- One marker byte per block (byte 5 of the spare area of page 0)
- Any value other than 0xFF marks the block as bad
- An image that ends early yields a partial, flagged table
"""

import time
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional

from bbm_inspector.analysis.findings import Stage
from bbm_inspector.analysis.reporter import Reporter, generate_bad_block_list
from bbm_inspector.core.byte_cursor import ByteCursor
from bbm_inspector.core.errors import EndOfDataError, ImageIOError
from bbm_inspector.core.geometry import DeviceGeometry, ERASED_BYTE

# Module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class BadBlockEntry:
    """
    A block whose factory marker is not 0xFF.

    Attributes:
        block_index: Block number (0-4095)
        matched: Set once a replacement-map entry accounts for this block
    """
    block_index: int
    matched: bool = False


@dataclass
class BadBlockTable:
    """
    Bad blocks found by sampling the factory markers.

    Entries are in strictly increasing block order because blocks are
    visited in index order.

    Attributes:
        entries: Bad blocks, ordered by block index
        blocks_sampled: Number of markers that were read
        complete: False if the image ended before every block was sampled
        scan_duration: Time taken to sample all markers, in seconds

    Example:
        >>> table = locate_bad_blocks(cursor, geometry)
        >>> print(f"Bad blocks: {table.block_indices()}")
        >>> entry = table.find(3)
        >>> if entry is not None and not entry.matched:
        ...     print("Block 3 has no replacement")
    """
    entries: List[BadBlockEntry] = field(default_factory=list)
    blocks_sampled: int = 0
    complete: bool = True
    scan_duration: float = field(default=0.0, compare=False)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[BadBlockEntry]:
        return iter(self.entries)

    def __contains__(self, block_index: int) -> bool:
        return self.find(block_index) is not None

    def append(self, block_index: int) -> BadBlockEntry:
        """Add a bad block; block indices must be strictly increasing."""
        if self.entries and block_index <= self.entries[-1].block_index:
            raise ValueError(
                f"Block {block_index} added after block {self.entries[-1].block_index}"
            )
        entry = BadBlockEntry(block_index)
        self.entries.append(entry)
        return entry

    def find(self, block_index: int) -> Optional[BadBlockEntry]:
        """Get the entry for a block, or None if the block is not bad."""
        for entry in self.entries:
            if entry.block_index == block_index:
                return entry
        return None

    def block_indices(self) -> List[int]:
        """Get the bad block numbers in order."""
        return [entry.block_index for entry in self.entries]

    def unmatched(self) -> List[BadBlockEntry]:
        """Get bad blocks that no replacement-map entry accounted for."""
        return [entry for entry in self.entries if not entry.matched]

    def to_dict(self) -> dict:
        """Serializable representation."""
        return {
            'blocks_sampled': self.blocks_sampled,
            'complete': self.complete,
            'entries': [
                {'block_index': e.block_index, 'matched': e.matched}
                for e in self.entries
            ],
        }


# =============================================================================
# Marker Scanning
# =============================================================================


def is_bad_block_marker(value: int) -> bool:
    """Any marker byte other than the erased value flags a bad block."""
    return value != ERASED_BYTE


def locate_bad_blocks(
    cursor: ByteCursor,
    geometry: DeviceGeometry,
    reporter: Optional[Reporter] = None,
    progress_callback: Optional[Callable[[int, int, bool], None]] = None
) -> BadBlockTable:
    """
    Sample the factory bad-block marker of every block.

    For each block the cursor seeks to the marker byte and reads it. If the
    image ends (or a read fails) before every block was sampled, the loop
    stops, the table is flagged incomplete, and what was collected is kept.

    Args:
        cursor: Byte source over the image
        geometry: Device geometry
        reporter: Optional reporter for findings
        progress_callback: Optional function(blocks_done, total, is_bad)

    Returns:
        BadBlockTable ordered by block index

    Example:
        >>> with ByteCursor.open("dump.bin") as cursor:
        ...     table = locate_bad_blocks(cursor, get_standard_nand512_geometry())
        >>> print(f"{len(table)} bad blocks")
    """
    table = BadBlockTable()
    start_time = time.time()

    if reporter is not None:
        reporter.info(Stage.LOCATOR, "locator.start", "Searching for bad block markers...")

    for block_index in range(geometry.number_of_blocks):
        offset = geometry.marker_offset(block_index)
        try:
            cursor.seek(offset)
            marker = cursor.read_byte()
        except EndOfDataError:
            table.complete = False
            logger.warning(f"Image ended before block {block_index} marker at {offset:08X}")
            if reporter is not None:
                reporter.error(
                    Stage.LOCATOR, "locator.end_of_data",
                    f"FBB: Unexpected End-Of-File found at block {block_index} "
                    f"({offset:08X}), {block_index} of {geometry.number_of_blocks} "
                    f"blocks sampled!!",
                    offset=offset,
                )
            break
        except ImageIOError as e:
            table.complete = False
            logger.error(f"Marker read failed for block {block_index}: {e}")
            if reporter is not None:
                reporter.error(Stage.LOCATOR, "locator.read_error", f"FBB: {e}",
                               offset=offset)
            break

        table.blocks_sampled += 1
        is_bad = is_bad_block_marker(marker)
        if is_bad:
            table.append(block_index)
            logger.debug(f"Block {block_index} marker {marker:02X} at {offset:08X}")

        if progress_callback is not None:
            progress_callback(block_index + 1, geometry.number_of_blocks, is_bad)

    table.scan_duration = time.time() - start_time

    if reporter is not None:
        reporter.info(Stage.LOCATOR, "locator.table", generate_bad_block_list(table))

    return table
