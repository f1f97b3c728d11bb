"""
FlashFX Bad Block Map (BBM) header decoding.

The BBM keeps two copies of its header near the end of the device, each
followed by the replacement map that says which reserved block stands in
for which bad block. This module:
- Locates the 8-byte header signature with an exact-match automaton
- Decodes the fixed little-endian header layout
- Checks parity bits, expected constants and primary/copy agreement
- Classifies every replacement-map slot by its sentinel value

Header layout (after the signature, little-endian):

    offset  size  field
    0       4     data block count      (bit 31 = parity)
    4       2     block size            (bit 15 = parity)
    6       2     status                (0x0000 low table, 0xFFFF high table)
    8       4     data block count copy
    12      2     block size copy
    14      2     map size
    16      2     in-progress index
    18      2     spare block count     (bit 15 = parity)
    20      2     spare block count copy
    22      2     reserved
    24      4*n   replacement map, n = spare block count
"""

import struct
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Collection, List, Optional, Tuple

from bbm_inspector.analysis.findings import Stage, FindingCategory, ok_or
from bbm_inspector.analysis.reporter import Reporter
from bbm_inspector.core.byte_cursor import ByteCursor
from bbm_inspector.core.errors import EndOfDataError, FormatError, FormatErrorReason
from bbm_inspector.core.geometry import DeviceGeometry

# Module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

BBM_SIGNATURE = bytes([0xDB, 0xC0, 0x95, 0x77, 0x7A, 0x5C, 0xF7, 0x2C])

# Replacement map sentinels
FREE_SPARE_MARKER = 0xFFFFFFFF
HEADER_BLOCK_MARKER = 0x7FFFFFFF
FACTORY_BAD_MARKER = 0x7FFFFFFE
RESERVED_MARKERS = (0x7FFFFFFD, 0x7FFFFFFC)
REPLACEMENT_FLAG = 0x80000000
BLOCK_INDEX_MASK = 0x7FFFFFFF

# Expected header values for a NAND512 device
EXPECTED_DATA_BLOCK_COUNT = 0x80000FA0  # 4000 data blocks, parity set
EXPECTED_BLOCK_SIZE = 0x4000
EXPECTED_MAP_SIZE = 512
EXPECTED_IN_PROGRESS_INDEX = 0xFFFF
EXPECTED_RESERVED = 0xFFFF
MAX_SPARE_COUNT = 1000
SPARE_COUNT_MASK = 0x7FFF

STATUS_LOW = 0x0000
STATUS_HIGH = 0xFFFF

HEADER_FIELDS_SIZE = 24
MAP_ENTRY_SIZE = 4


# =============================================================================
# Parity
# =============================================================================


def is_odd_parity(value: int, width: int) -> bool:
    """
    Check the parity bit of a field.

    The top bit of the field is a parity bit chosen so that the total
    number of set bits (data bits plus parity bit) is odd.

    Args:
        value: Field value
        width: Field width in bits (16 or 32)

    Returns:
        True if the field has odd parity

    Example:
        >>> is_odd_parity(0x80000FA0, 32)
        True
        >>> is_odd_parity(0x0060, 16)
        False
    """
    return bin(value & ((1 << width) - 1)).count("1") % 2 == 1


def with_odd_parity(value: int, width: int) -> int:
    """Set or clear the top bit of value so the field has odd parity."""
    data = value & ((1 << (width - 1)) - 1)
    if is_odd_parity(data, width):
        return data
    return data | (1 << (width - 1))


# =============================================================================
# Replacement Map Markers
# =============================================================================


class MarkerKind(Enum):
    """Classification of a replacement-map slot."""
    HEADER_BLOCK = "header block"
    FACTORY_BAD = "factory bad"
    RESERVED = "reserved"
    FREE_SPARE = "free spare"
    REPLACEMENT_INDEX = "replacement index"
    MALFORMED = "malformed"


def classify_marker(raw: int) -> MarkerKind:
    """
    Classify a 32-bit replacement-map value by its bit pattern alone.

    Example:
        >>> classify_marker(0x80000003)
        <MarkerKind.REPLACEMENT_INDEX: 'replacement index'>
    """
    if raw == HEADER_BLOCK_MARKER:
        return MarkerKind.HEADER_BLOCK
    if raw == FACTORY_BAD_MARKER:
        return MarkerKind.FACTORY_BAD
    if raw in RESERVED_MARKERS:
        return MarkerKind.RESERVED
    if raw == FREE_SPARE_MARKER:
        return MarkerKind.FREE_SPARE
    if raw & REPLACEMENT_FLAG:
        return MarkerKind.REPLACEMENT_INDEX
    return MarkerKind.MALFORMED


_MARKER_VERDICTS = {
    MarkerKind.HEADER_BLOCK: "OK (BBM header block)",
    MarkerKind.FACTORY_BAD: "OK (factory bad block in spare area)",
    MarkerKind.RESERVED: "RESERVED!!",
    MarkerKind.FREE_SPARE: "OK (Free spare block)",
    MarkerKind.REPLACEMENT_INDEX: "OK",
    MarkerKind.MALFORMED: "Bad!!",
}


@dataclass(frozen=True)
class MarkerValue:
    """
    Raw value of one replacement-map slot.

    Attributes:
        raw: 32-bit value as stored
    """
    raw: int

    @property
    def kind(self) -> MarkerKind:
        return classify_marker(self.raw)

    @property
    def block_index(self) -> Optional[int]:
        """Replaced block number for REPLACEMENT_INDEX slots, else None."""
        if self.kind is MarkerKind.REPLACEMENT_INDEX:
            return self.raw & BLOCK_INDEX_MASK
        return None

    @property
    def is_real_entry(self) -> bool:
        """Slots that account for a bad block."""
        return self.kind in (MarkerKind.REPLACEMENT_INDEX, MarkerKind.FACTORY_BAD)

    @property
    def is_unused(self) -> bool:
        """Slots that are free or hold the BBM header itself."""
        return self.kind in (MarkerKind.FREE_SPARE, MarkerKind.HEADER_BLOCK)

    @property
    def is_valid(self) -> bool:
        return self.kind not in (MarkerKind.RESERVED, MarkerKind.MALFORMED)

    @property
    def verdict(self) -> str:
        return _MARKER_VERDICTS[self.kind]


# =============================================================================
# Header Record
# =============================================================================


class HeaderRole(Enum):
    """Which of the two BBM tables a header claims to be."""
    LOW = "low"
    HIGH = "high"
    MALFORMED = "malformed"


def classify_status(status: int) -> HeaderRole:
    """Map the status word to the table role it declares."""
    if status == STATUS_LOW:
        return HeaderRole.LOW
    if status == STATUS_HIGH:
        return HeaderRole.HIGH
    return HeaderRole.MALFORMED


def derive_map_length(spare_primary: int, spare_copy: int,
                      default: int) -> int:
    """
    Number of replacement-map entries that follow the header.

    The spare block count is trusted when both copies agree and the count
    is below 1000; otherwise the reserved-area capacity is assumed.
    """
    count = spare_primary & SPARE_COUNT_MASK
    if spare_primary == spare_copy and count < MAX_SPARE_COUNT:
        return count
    return default


@dataclass
class BbmHeader:
    """
    A decoded BBM header and its replacement map.

    Attributes:
        signature_offset: Image offset of the first signature byte
        data_block_count: (primary, copy) raw values
        block_size: (primary, copy) raw values
        status: Status word
        map_size: Map size field
        in_progress_index: In-progress index field
        spare_count: (primary, copy) raw values
        reserved: Reserved field
        replacement_map: Decoded slots, in map order
        real_entry_count: Slots that account for a bad block
    """
    signature_offset: int
    data_block_count: Tuple[int, int]
    block_size: Tuple[int, int]
    status: int
    map_size: int
    in_progress_index: int
    spare_count: Tuple[int, int]
    reserved: int
    replacement_map: List[MarkerValue] = field(default_factory=list)
    real_entry_count: int = 0

    @property
    def role(self) -> HeaderRole:
        return classify_status(self.status)

    @property
    def map_length(self) -> int:
        return len(self.replacement_map)

    def to_dict(self) -> dict:
        """Serializable representation."""
        return {
            'signature_offset': self.signature_offset,
            'role': self.role.value,
            'data_block_count': list(self.data_block_count),
            'block_size': list(self.block_size),
            'status': self.status,
            'map_size': self.map_size,
            'in_progress_index': self.in_progress_index,
            'spare_count': list(self.spare_count),
            'reserved': self.reserved,
            'real_entry_count': self.real_entry_count,
            'replacement_map': [m.raw for m in self.replacement_map],
        }


@dataclass
class HeaderPair:
    """The two BBM headers, in the order they were found."""
    low: BbmHeader
    high: BbmHeader

    @property
    def distance(self) -> int:
        """Bytes from the low header signature to the high header signature."""
        return self.high.signature_offset - self.low.signature_offset


# =============================================================================
# Signature Search
# =============================================================================


def signature_step(state: int, byte: int) -> int:
    """
    Exact-match automaton over the 8 signature bytes.

    State n means the first n signature bytes have been seen. Any
    mismatch resets to state 0.
    """
    if byte == BBM_SIGNATURE[state]:
        return state + 1
    return 0


def find_signature(cursor: ByteCursor,
                   skip_offsets: Collection[int] = ()) -> int:
    """
    Scan forward from the cursor for the BBM signature.

    Args:
        cursor: Byte source, positioned where the search starts
        skip_offsets: Signature offsets to pass over (already decoded)

    Returns:
        Offset of the first signature byte; the cursor is left just past
        the signature

    Raises:
        EndOfDataError: If the image ends without a match
    """
    state = 0
    start = cursor.position
    while True:
        offset = cursor.position
        byte = cursor.read_byte()
        if state == 0:
            start = offset
        state = signature_step(state, byte)
        if state == len(BBM_SIGNATURE):
            if start in skip_offsets:
                logger.debug(f"Skipping already decoded signature at {start:08X}")
                state = 0
                continue
            return start


# =============================================================================
# Header Decoding
# =============================================================================


def _read_u16(cursor: ByteCursor) -> int:
    return struct.unpack('<H', cursor.read_bytes(2))[0]


def _read_u32(cursor: ByteCursor) -> int:
    return struct.unpack('<I', cursor.read_bytes(4))[0]


def _expected(passed: bool) -> str:
    return ok_or(passed, "as expected", "not as expected!!")


def _match(passed: bool) -> str:
    return ok_or(passed, "match", "do not match!!")


def decode_header(
    cursor: ByteCursor,
    signature_offset: int,
    reporter: Reporter,
    geometry: DeviceGeometry,
    previous: Optional[BbmHeader] = None
) -> BbmHeader:
    """
    Decode the header whose signature was just consumed.

    Every field check is reported as its own finding; none of them stops
    decoding.

    Args:
        cursor: Byte source positioned just after the signature
        signature_offset: Offset of the first signature byte
        reporter: Receives the findings
        geometry: Device geometry (for block numbers and map capacity)
        previous: Header decoded before this one, if any

    Returns:
        Decoded BbmHeader

    Raises:
        EndOfDataError: If the image ends inside the header or map
    """
    slot = "low" if previous is None else "high"
    table_number = 0 if previous is None else 1
    block = geometry.block_of(signature_offset)
    H = Stage.HEADER

    reporter.info(H, f"{slot}.found",
                  f"Found BBM header at: {signature_offset:08X}, "
                  f"block # {block:X} ({block})",
                  offset=signature_offset)

    # Data block count and block size
    data_blocks = _read_u32(cursor)
    masked = data_blocks & BLOCK_INDEX_MASK
    reporter.check(H, f"{slot}.data_block_count.parity", is_odd_parity(data_blocks, 32),
                   f"Number of data blocks= {masked:08X} ({masked}), "
                   f"parity is {ok_or(is_odd_parity(data_blocks, 32))}")
    reporter.check(H, f"{slot}.data_block_count.value",
                   data_blocks == EXPECTED_DATA_BLOCK_COUNT,
                   f" Value for number of data blocks is "
                   f"{_expected(data_blocks == EXPECTED_DATA_BLOCK_COUNT)}")

    block_size = _read_u16(cursor)
    masked = block_size & SPARE_COUNT_MASK
    reporter.check(H, f"{slot}.block_size.parity", is_odd_parity(block_size, 16),
                   f"Data block size= {masked:04X} ({masked}), "
                   f"parity is {ok_or(is_odd_parity(block_size, 16))}")
    reporter.check(H, f"{slot}.block_size.value", block_size == EXPECTED_BLOCK_SIZE,
                   f" Value for data block size is "
                   f"{_expected(block_size == EXPECTED_BLOCK_SIZE)}")

    # Status word
    status = _read_u16(cursor)
    _report_status(reporter, slot, status, previous)

    # Copies of data block count and block size
    data_blocks_copy = _read_u32(cursor)
    masked = data_blocks_copy & BLOCK_INDEX_MASK
    reporter.check(H, f"{slot}.data_block_count_copy.parity",
                   is_odd_parity(data_blocks_copy, 32),
                   f"Copy of number of data blocks= {masked:08X} ({masked}), "
                   f"parity is {ok_or(is_odd_parity(data_blocks_copy, 32))}")
    reporter.check(H, f"{slot}.data_block_count_copy.value",
                   data_blocks_copy == EXPECTED_DATA_BLOCK_COUNT,
                   f" Value for copy of number of data blocks is "
                   f"{_expected(data_blocks_copy == EXPECTED_DATA_BLOCK_COUNT)}")
    agree = (data_blocks & BLOCK_INDEX_MASK) == (data_blocks_copy & BLOCK_INDEX_MASK)
    reporter.check(H, f"{slot}.data_block_count.copy_match", agree,
                   f" Number of blocks {_match(agree)}")

    block_size_copy = _read_u16(cursor)
    masked = block_size_copy & SPARE_COUNT_MASK
    reporter.check(H, f"{slot}.block_size_copy.parity", is_odd_parity(block_size_copy, 16),
                   f"Copy of data block size= {masked:04X} ({masked}), "
                   f"parity is {ok_or(is_odd_parity(block_size_copy, 16))}")
    reporter.check(H, f"{slot}.block_size_copy.value",
                   block_size_copy == EXPECTED_BLOCK_SIZE,
                   f" Value for copy of data block size is "
                   f"{_expected(block_size_copy == EXPECTED_BLOCK_SIZE)}")
    agree = (block_size & SPARE_COUNT_MASK) == (block_size_copy & SPARE_COUNT_MASK)
    reporter.check(H, f"{slot}.block_size.copy_match", agree,
                   f" Block sizes {_match(agree)}")

    # Map size and in-progress index
    map_size = _read_u16(cursor)
    reporter.check(H, f"{slot}.map_size", map_size == EXPECTED_MAP_SIZE,
                   f"Map size= {map_size:04X} ({map_size}), "
                   f"{ok_or(map_size == EXPECTED_MAP_SIZE, bad='not Ok!!')}")

    in_progress = _read_u16(cursor)
    reporter.check(H, f"{slot}.in_progress_index",
                   in_progress == EXPECTED_IN_PROGRESS_INDEX,
                   f"In-progress index= {in_progress:04X} ({in_progress}), "
                   f"{ok_or(in_progress == EXPECTED_IN_PROGRESS_INDEX, bad='not Ok!!')}")

    # Spare block counts
    spares = _read_u16(cursor)
    _report_spare_count(reporter, slot, "spare_count", "Number of spare blocks",
                        "spare blocks", spares)
    spares_copy = _read_u16(cursor)
    _report_spare_count(reporter, slot, "spare_count_copy", "Copy of number of spare blocks",
                        "copy of spare blocks", spares_copy)
    agree = (spares & SPARE_COUNT_MASK) == (spares_copy & SPARE_COUNT_MASK)
    reporter.check(H, f"{slot}.spare_count.copy_match", agree,
                   f" Number of spare blocks {_match(agree)}")

    map_length = _report_map_length(reporter, slot, spares, spares_copy, geometry)

    # Reserved word
    reserved = _read_u16(cursor)
    reporter.check(H, f"{slot}.reserved", reserved == EXPECTED_RESERVED,
                   f"Reserved entry= {reserved:04X} ({reserved}), "
                   f"{ok_or(reserved == EXPECTED_RESERVED, bad='not Ok!!')}")

    header = BbmHeader(
        signature_offset=signature_offset,
        data_block_count=(data_blocks, data_blocks_copy),
        block_size=(block_size, block_size_copy),
        status=status,
        map_size=map_size,
        in_progress_index=in_progress,
        spare_count=(spares, spares_copy),
        reserved=reserved,
    )

    # Replacement map
    for _ in range(map_length):
        header.replacement_map.append(MarkerValue(_read_u32(cursor)))

    reporter.info(H, f"{slot}.map", f"Map({table_number}) Entries:")
    for map_index, marker in enumerate(header.replacement_map):
        if marker.is_real_entry:
            header.real_entry_count += 1
        reporter.check(H, f"{slot}.map[{map_index}]", marker.is_valid,
                       f"{map_index:2}: {marker.raw:08X} {marker.verdict}")

    logger.info(
        f"Decoded {slot} BBM header at {signature_offset:08X}: "
        f"{map_length} map entries, {header.real_entry_count} in use"
    )
    return header


def _report_status(reporter: Reporter, slot: str, status: int,
                   previous: Optional[BbmHeader]) -> None:
    role = classify_status(status)
    check = f"{slot}.status"

    if role is HeaderRole.LOW:
        if previous is None:
            reporter.check(Stage.HEADER, check, True, "This is the LOW table")
        elif previous.role is HeaderRole.LOW:
            reporter.check(Stage.HEADER, check, False,
                           "Header status is BAD, the low table has already been located!!")
        else:
            reporter.check(Stage.HEADER, check, False,
                           "Header status is BAD, the low table was found after "
                           "another header!!")
    elif role is HeaderRole.HIGH:
        if previous is not None and previous.role is HeaderRole.LOW:
            reporter.check(Stage.HEADER, check, True, "This is the HIGH table")
        else:
            reporter.check(Stage.HEADER, check, False,
                           "Header status is BAD, the low table HAS NOT been located!!")
    else:
        reporter.check(Stage.HEADER, check, False,
                       f"Header status is BAD, unknown value found ({status:04X})!!")


def _report_spare_count(reporter: Reporter, slot: str, key: str, label: str,
                        value_label: str, raw: int) -> None:
    count = raw & SPARE_COUNT_MASK
    parity = is_odd_parity(raw, 16)
    in_range = 0 < count < MAX_SPARE_COUNT
    reporter.check(Stage.HEADER, f"{slot}.{key}.parity", parity,
                   f"{label}= {count:04X} ({count}), parity is {ok_or(parity)}")
    reporter.check(Stage.HEADER, f"{slot}.{key}.value", in_range,
                   f" Value for {value_label} is {_expected(in_range)}")


def _report_map_length(reporter: Reporter, slot: str, spares: int, spares_copy: int,
                       geometry: DeviceGeometry) -> int:
    capacity = geometry.reserved_blocks
    map_length = derive_map_length(spares, spares_copy, capacity)
    trusted = spares == spares_copy and (spares & SPARE_COUNT_MASK) < MAX_SPARE_COUNT
    source = "spare block count" if trusted else "default"

    if map_length > capacity:
        reporter.check(Stage.HEADER, f"{slot}.map_length", False,
                       f"Map length= {map_length} entries exceeds the reserved area "
                       f"capacity ({capacity}), decoding {capacity} entries!!")
        return capacity

    reporter.check(Stage.HEADER, f"{slot}.map_length", True,
                   f"Map length= {map_length} entries ({source}), Ok")
    return map_length


def decode_headers(
    cursor: ByteCursor,
    reporter: Reporter,
    geometry: Optional[DeviceGeometry] = None,
    confirm_retry: Optional[Callable[[], bool]] = None,
    search_start_permille: int = 975
) -> HeaderPair:
    """
    Locate and decode the low and high BBM headers.

    The signature search starts in the last 2.5% of the image. If it runs
    off the end, confirm_retry is asked once whether to search again from
    offset 0; signatures that were already decoded are skipped during the
    retry.

    Args:
        cursor: Byte source over the image
        reporter: Receives the findings
        geometry: Device geometry (default: NAND512)
        confirm_retry: Returns True to retry from offset 0 (default: never)
        search_start_permille: Search start in thousandths of the image size

    Returns:
        HeaderPair with the first header found as low and the second as high

    Raises:
        FormatError: If a signature is still missing after the retry, or
            the retry was declined
        EndOfDataError: If the image ends inside a header

    Example:
        >>> headers = decode_headers(cursor, reporter, confirm_retry=lambda: True)
        >>> print(f"Headers {headers.distance} bytes apart")
    """
    if geometry is None:
        geometry = DeviceGeometry()

    start = cursor.size * search_start_permille // 1000
    cursor.seek(start)
    reporter.info(Stage.HEADER, "header.search",
                  f"Searching for BBM header signature from {start:08X}...",
                  offset=start)

    headers: List[BbmHeader] = []
    retried = False

    while len(headers) < 2:
        try:
            signature_offset = find_signature(
                cursor, skip_offsets={h.signature_offset for h in headers}
            )
        except EndOfDataError:
            found = f"{len(headers)} of 2 headers found"
            if retried:
                reporter.error(Stage.HEADER, "header.signature_not_found",
                               "BBM header signature not found during retry!",
                               FindingCategory.FORMAT)
                raise FormatError(FormatErrorReason.SIGNATURE_NOT_FOUND, found)

            reporter.error(Stage.HEADER, "header.signature_not_found",
                           "BBM header signature not found!",
                           FindingCategory.FORMAT)
            if confirm_retry is None or not confirm_retry():
                raise FormatError(FormatErrorReason.SIGNATURE_NOT_FOUND, found)

            retried = True
            logger.info("Retrying BBM signature search from offset 0")
            reporter.info(Stage.HEADER, "header.retry",
                          "Searching again from the beginning of the file...",
                          offset=0)
            cursor.seek(0)
            continue

        previous = headers[-1] if headers else None
        headers.append(decode_header(cursor, signature_offset, reporter,
                                     geometry, previous))

    return HeaderPair(low=headers[0], high=headers[1])
