"""
Cross-validation of the two BBM headers against the bad-block table.

The checks run in a fixed order:
1. Header separation: the high header must sit within one block of the low
2. Count agreement: both maps must account for every bad block
3. Entry-by-entry reconciliation of the two maps against the table

Count disagreement means the maps cannot be trusted entry by entry, so
reconciliation is skipped in that case.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from bbm_inspector.analysis.bbm_header import HeaderPair, MarkerKind, MarkerValue
from bbm_inspector.analysis.findings import Stage, ok_or
from bbm_inspector.analysis.reporter import Reporter, generate_box
from bbm_inspector.analysis.scanner import BadBlockTable
from bbm_inspector.core.geometry import DeviceGeometry

# Module logger
logger = logging.getLogger(__name__)

DEFAULT_MAX_HEADER_DISTANCE = 16900
FULL_MATCH_MESSAGE = "Replacement map contents match"


# =============================================================================
# Result Structures
# =============================================================================


@dataclass(frozen=True)
class MapMismatch:
    """
    A replacement-map slot where the two maps or the table disagree.

    Attributes:
        map_index: Slot number in both maps
        low_raw: Raw value in the low map
        high_raw: Raw value in the high map
        reason: What did not agree
    """
    map_index: int
    low_raw: int
    high_raw: int
    reason: str

    def to_dict(self) -> dict:
        return {
            'map_index': self.map_index,
            'low_raw': self.low_raw,
            'high_raw': self.high_raw,
            'reason': self.reason,
        }


@dataclass
class ValidationResult:
    """
    Outcome of cross-validating a header pair against the bad-block table.

    Attributes:
        separation_ok: High header lies close enough after the low header
        counts_agree: Table size equals both real-entry counts
        reconciled: Entry-by-entry reconciliation ran
        mismatches: Slots that did not reconcile
        unmatched_blocks: Bad blocks no map entry accounted for
        header_distance: Bytes between the two signatures
    """
    separation_ok: bool = False
    counts_agree: bool = False
    reconciled: bool = False
    mismatches: List[MapMismatch] = field(default_factory=list)
    unmatched_blocks: List[int] = field(default_factory=list)
    header_distance: int = 0

    @property
    def full_match(self) -> bool:
        """Counts agree and every slot reconciled."""
        return self.counts_agree and self.reconciled and not self.mismatches

    def to_dict(self) -> dict:
        return {
            'separation_ok': self.separation_ok,
            'counts_agree': self.counts_agree,
            'reconciled': self.reconciled,
            'full_match': self.full_match,
            'header_distance': self.header_distance,
            'mismatches': [m.to_dict() for m in self.mismatches],
            'unmatched_blocks': list(self.unmatched_blocks),
        }


# =============================================================================
# Cross Validation
# =============================================================================


def cross_validate(
    headers: HeaderPair,
    table: BadBlockTable,
    reporter: Reporter,
    geometry: Optional[DeviceGeometry] = None,
    max_header_distance: int = DEFAULT_MAX_HEADER_DISTANCE
) -> ValidationResult:
    """
    Reconcile both replacement maps with the bad-block table.

    Table entries that a map slot accounts for are marked matched in place.

    Args:
        headers: Decoded low and high headers
        table: Bad-block table from the locator
        reporter: Receives the findings
        geometry: Device geometry (default: NAND512)
        max_header_distance: Largest accepted signature distance in bytes

    Returns:
        ValidationResult

    Example:
        >>> result = cross_validate(headers, table, reporter)
        >>> if not result.full_match:
        ...     for mismatch in result.mismatches:
        ...         print(mismatch.map_index, mismatch.reason)
    """
    if geometry is None:
        geometry = DeviceGeometry()

    result = ValidationResult(header_distance=headers.distance)
    V = Stage.VALIDATOR

    # Header separation
    distance = headers.distance
    result.separation_ok = 0 < distance < max_header_distance
    reporter.check(V, "validator.separation", result.separation_ok,
                   f"BBM headers are {distance:X} ({distance}) bytes apart, "
                   f"{ok_or(result.separation_ok, bad='too far apart!!')}")

    # Count agreement
    low_count = headers.low.real_entry_count
    high_count = headers.high.real_entry_count
    result.counts_agree = len(table) == low_count == high_count
    if not result.counts_agree:
        reporter.check(V, "validator.counts", False,
                       f"*** Badly formed BBM header ***\n"
                       f" Bad blocks in file: {len(table)}\n"
                       f" Entries in Map(0): {low_count}\n"
                       f" Entries in Map(1): {high_count}")
        logger.warning(
            f"Entry counts disagree (table={len(table)}, low={low_count}, "
            f"high={high_count}), skipping reconciliation"
        )
        return result

    reporter.check(V, "validator.counts", True,
                   f"Bad block counts match: {len(table)} in file, "
                   f"{low_count} in Map(0), {high_count} in Map(1)")

    # Entry-by-entry reconciliation
    result.reconciled = True
    low_map = headers.low.replacement_map
    high_map = headers.high.replacement_map
    length = min(len(low_map), len(high_map))

    for map_index in range(length):
        low, high = low_map[map_index], high_map[map_index]
        if low.is_unused and high.is_unused:
            continue
        reason = _reconcile_slot(map_index, low, high, table, geometry)
        if reason is None:
            reporter.check(V, f"validator.map[{map_index}]", True,
                           _reconciled_message(map_index, low, geometry))
            continue
        mismatch = MapMismatch(map_index, low.raw, high.raw, reason)
        result.mismatches.append(mismatch)
        reporter.check(V, f"validator.map[{map_index}]", False,
                       f"Replacement map mismatch at entry {map_index}: "
                       f"{low.raw:08X} / {high.raw:08X}, {reason}!!")

    if not result.mismatches:
        reporter.check(V, "validator.full_match", True,
                       generate_box([FULL_MATCH_MESSAGE]))

    # Bad blocks no map entry accounted for
    for entry in table.unmatched():
        result.unmatched_blocks.append(entry.block_index)
        reporter.check(V, f"validator.unmatched[{entry.block_index}]", False,
                       f"Bad block {entry.block_index:X} ({entry.block_index}) "
                       f"has no replacement entry!!")

    logger.info(
        f"Cross-validation: {len(result.mismatches)} mismatches, "
        f"{len(result.unmatched_blocks)} unmatched bad blocks"
    )
    return result


def _reconcile_slot(map_index: int, low: MarkerValue, high: MarkerValue,
                    table: BadBlockTable,
                    geometry: DeviceGeometry) -> Optional[str]:
    """
    Reconcile one slot of both maps.

    Returns:
        None if the slot reconciled, else the mismatch reason
    """
    if low.kind is MarkerKind.REPLACEMENT_INDEX and high.kind is MarkerKind.REPLACEMENT_INDEX:
        if low.block_index != high.block_index:
            return "replacement indices differ"
        return _mark(table, low.block_index)

    if low.kind is MarkerKind.FACTORY_BAD and high.kind is MarkerKind.FACTORY_BAD:
        return _mark(table, geometry.reserved_block_for_slot(map_index))

    if low.kind is high.kind:
        return f"both entries are {low.kind.value}"
    return f"entry kinds differ ({low.kind.value} / {high.kind.value})"


def _reconciled_message(map_index: int, marker: MarkerValue,
                        geometry: DeviceGeometry) -> str:
    if marker.kind is MarkerKind.FACTORY_BAD:
        block = geometry.reserved_block_for_slot(map_index)
        return f"{map_index:2}: Spare Area bad block {block:3X} found in bad block table"
    return f"{map_index:2}: Replaced block {marker.block_index:3X} found in bad block table"


def _mark(table: BadBlockTable, block_index: int) -> Optional[str]:
    entry = table.find(block_index)
    if entry is None:
        return f"block {block_index:X} ({block_index}) is not in the bad block table"
    entry.matched = True
    return None
