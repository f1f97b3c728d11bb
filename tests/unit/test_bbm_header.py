"""
Unit tests for BBM header decoding.

Tests parity, marker classification, the signature automaton, header
field checks and the bounded signature search retry.
"""

import pytest
from bbm_inspector.analysis.bbm_header import (
    BBM_SIGNATURE,
    FACTORY_BAD_MARKER,
    FREE_SPARE_MARKER,
    HEADER_BLOCK_MARKER,
    STATUS_HIGH,
    STATUS_LOW,
    HeaderRole,
    MarkerKind,
    MarkerValue,
    classify_marker,
    decode_header,
    decode_headers,
    derive_map_length,
    find_signature,
    is_odd_parity,
    signature_step,
    with_odd_parity,
)
from bbm_inspector.analysis import FindingCategory, MemorySink, Reporter
from bbm_inspector.core import ByteCursor, EndOfDataError, FormatError, FormatErrorReason
from tests.fixtures import GEOMETRY, encode_bbm_header, replacement, standard_map

SMALL_MAP = [replacement(1), FREE_SPARE_MARKER, FREE_SPARE_MARKER, FREE_SPARE_MARKER]
SMALL_IMAGE_SIZE = 4000  # Signature search starts at offset 3900


def small_image(*headers, size: int = SMALL_IMAGE_SIZE) -> bytes:
    """Zero-filled image with (offset, blob) headers placed in it."""
    image = bytearray(size)
    for offset, blob in headers:
        image[offset:offset + len(blob)] = blob
    return bytes(image)


def decode_one(blob: bytes, reporter: Reporter):
    """Find and decode a single header at the start of blob."""
    cursor = ByteCursor.from_bytes(blob)
    offset = find_signature(cursor)
    return decode_header(cursor, offset, reporter, GEOMETRY)


def failed_checks(reporter: Reporter):
    return {f.check for f in reporter.failures}


class TestParity:
    """Test odd parity of header fields."""

    def test_expected_constants_have_odd_parity(self):
        """Test the expected data block count and block size."""
        assert is_odd_parity(0x80000FA0, 32)
        assert is_odd_parity(0x4000, 16)

    def test_even_parity(self):
        """Test fields with an even number of set bits."""
        assert not is_odd_parity(0x4001, 16)
        assert not is_odd_parity(0x0060, 16)

    def test_with_odd_parity(self):
        """The parity bit is set only when the data bits are even."""
        assert with_odd_parity(96, 16) == 0x8060
        assert with_odd_parity(4, 16) == 0x0004
        assert is_odd_parity(with_odd_parity(1000, 16), 16)


class TestMarkerClassification:
    """Test replacement-map slot classification."""

    @pytest.mark.parametrize("raw, kind", [
        (0xFFFFFFFF, MarkerKind.FREE_SPARE),
        (0x7FFFFFFF, MarkerKind.HEADER_BLOCK),
        (0x7FFFFFFE, MarkerKind.FACTORY_BAD),
        (0x7FFFFFFD, MarkerKind.RESERVED),
        (0x7FFFFFFC, MarkerKind.RESERVED),
        (0x80000003, MarkerKind.REPLACEMENT_INDEX),
        (0x00000003, MarkerKind.MALFORMED),
    ])
    def test_classify_marker(self, raw, kind):
        """Every bit pattern maps to exactly one kind."""
        assert classify_marker(raw) is kind

    def test_replacement_block_index(self):
        """Replacement slots carry the replaced block number."""
        assert MarkerValue(0x80000064).block_index == 100
        assert MarkerValue(FACTORY_BAD_MARKER).block_index is None

    def test_real_entries(self):
        """Replacements and factory-bad slots account for bad blocks."""
        assert MarkerValue(0x80000003).is_real_entry
        assert MarkerValue(FACTORY_BAD_MARKER).is_real_entry
        assert not MarkerValue(HEADER_BLOCK_MARKER).is_real_entry
        assert not MarkerValue(FREE_SPARE_MARKER).is_real_entry


class TestMapLength:
    """Test derivation of the replacement map length."""

    def test_agreeing_counts(self):
        """Agreeing spare counts below 1000 are used as is."""
        assert derive_map_length(0x8060, 0x8060, 96) == 96
        assert derive_map_length(0x0004, 0x0004, 96) == 4

    def test_disagreeing_counts(self):
        """Disagreeing copies fall back to the reserved capacity."""
        assert derive_map_length(0x0004, 0x8005, 96) == 96

    def test_count_too_large(self):
        """Counts of 1000 or more fall back to the reserved capacity."""
        count = with_odd_parity(1000, 16)
        assert derive_map_length(count, count, 96) == 96


class TestSignatureSearch:
    """Test the signature automaton and search."""

    def test_step_advances_on_match(self):
        """Each matching byte advances one state."""
        state = 0
        for byte in BBM_SIGNATURE:
            state = signature_step(state, byte)
        assert state == 8

    def test_step_resets_on_mismatch(self):
        """Any mismatch resets to state 0."""
        assert signature_step(3, 0x00) == 0
        assert signature_step(1, 0xDB) == 0

    def test_find_after_partial_match(self):
        """A broken prefix does not hide a later signature."""
        cursor = ByteCursor.from_bytes(b"\xDB\xC0\x95\x00" + BBM_SIGNATURE)

        assert find_signature(cursor) == 4
        assert cursor.position == 12

    def test_skip_decoded_offsets(self):
        """Signatures that were already decoded are passed over."""
        cursor = ByteCursor.from_bytes(BBM_SIGNATURE + bytes(4) + BBM_SIGNATURE)

        assert find_signature(cursor, skip_offsets={0}) == 12

    def test_no_signature(self):
        """The search ends with EndOfDataError."""
        with pytest.raises(EndOfDataError):
            find_signature(ByteCursor.from_bytes(bytes(64)))


class TestHeaderDecoding:
    """Test decoding and checking of a single header."""

    def test_consistent_header(self):
        """A well-formed header passes every check."""
        reporter = Reporter([MemorySink()])

        header = decode_one(encode_bbm_header(STATUS_LOW, SMALL_MAP), reporter)

        assert header.signature_offset == 0
        assert header.role is HeaderRole.LOW
        assert header.map_length == 4
        assert header.real_entry_count == 1
        assert header.spare_count == (4, 4)
        assert reporter.failures == []

    def test_report_lines(self):
        """Test the report text of a decoded header."""
        sink = MemorySink()

        decode_one(encode_bbm_header(STATUS_LOW, SMALL_MAP), Reporter([sink]))

        assert sink.lines[0] == "Found BBM header at: 00000000, block # 0 (0)"
        assert "Number of data blocks= 00000FA0 (4000), parity is Ok" in sink.lines
        assert "Data block size= 4000 (16384), parity is Ok" in sink.lines
        assert "This is the LOW table" in sink.lines
        assert "Map size= 0200 (512), Ok" in sink.lines
        assert "Map(0) Entries:" in sink.lines
        assert " 0: 80000001 OK" in sink.lines
        assert " 1: FFFFFFFF OK (Free spare block)" in sink.lines

    def test_parity_failure(self):
        """A block size with even parity fails parity and value checks."""
        reporter = Reporter([MemorySink()])

        decode_one(encode_bbm_header(STATUS_LOW, SMALL_MAP, block_size=0x4001), reporter)

        failed = failed_checks(reporter)
        assert "low.block_size.parity" in failed
        assert "low.block_size.value" in failed
        assert "low.data_block_count.parity" not in failed

    def test_copy_disagreement(self):
        """Differing copies of the data block count are reported."""
        reporter = Reporter([MemorySink()])

        decode_one(encode_bbm_header(STATUS_LOW, SMALL_MAP,
                                     data_block_count_copy=0x80000FA1), reporter)

        assert "low.data_block_count.copy_match" in failed_checks(reporter)

    def test_unexpected_constants(self):
        """Map size, in-progress index and reserved word are checked."""
        reporter = Reporter([MemorySink()])

        decode_one(encode_bbm_header(STATUS_LOW, SMALL_MAP, map_size=256,
                                     in_progress_index=3, reserved=0), reporter)

        failed = failed_checks(reporter)
        assert {"low.map_size", "low.in_progress_index", "low.reserved"} <= failed

    def test_malformed_status(self):
        """Unknown status values are reported."""
        reporter = Reporter([MemorySink()])

        header = decode_one(encode_bbm_header(0x1234, SMALL_MAP), reporter)

        assert header.role is HeaderRole.MALFORMED
        status = [f for f in reporter.findings if f.check == "low.status"][0]
        assert status.failed
        assert status.category is FindingCategory.CONSISTENCY
        assert "unknown value found (1234)" in status.message

    def test_map_length_clamped(self):
        """A map longer than the reserved area is clamped to 96 entries."""
        reporter = Reporter([MemorySink()])
        spare = with_odd_parity(200, 16)

        header = decode_one(encode_bbm_header(STATUS_LOW, standard_map(),
                                              spare_count=spare), reporter)

        assert header.map_length == 96
        assert "low.map_length" in failed_checks(reporter)

    def test_disagreeing_spare_counts_use_default(self):
        """Disagreeing spare counts decode the full reserved capacity."""
        reporter = Reporter([MemorySink()])

        header = decode_one(encode_bbm_header(STATUS_LOW, standard_map(),
                                              spare_count=0x0004, spare_count_copy=0x8005),
                            reporter)

        assert header.map_length == 96
        assert header.real_entry_count == 3
        failed = failed_checks(reporter)
        assert "low.spare_count.copy_match" in failed
        assert "low.map_length" not in failed

    def test_truncated_map(self):
        """End of data inside the map raises EndOfDataError."""
        blob = encode_bbm_header(STATUS_LOW, SMALL_MAP)[:-2]

        with pytest.raises(EndOfDataError):
            decode_one(blob, Reporter())


class TestHeaderPairDecoding:
    """Test the search for both headers."""

    def test_pair_in_search_window(self):
        """Headers after the search start are found without a retry."""
        asked = []
        image = small_image(
            (3900, encode_bbm_header(STATUS_LOW, SMALL_MAP)),
            (3950, encode_bbm_header(STATUS_HIGH, SMALL_MAP)),
        )
        reporter = Reporter([MemorySink()])

        pair = decode_headers(ByteCursor.from_bytes(image), reporter, GEOMETRY,
                              confirm_retry=lambda: asked.append(True) or True)

        assert pair.low.signature_offset == 3900
        assert pair.high.signature_offset == 3950
        assert pair.distance == 50
        assert pair.low.role is HeaderRole.LOW
        assert pair.high.role is HeaderRole.HIGH
        assert asked == []
        assert reporter.failures == []

    def test_retry_from_start(self):
        """Headers before the search start are found after one retry."""
        asked = []
        image = small_image(
            (10, encode_bbm_header(STATUS_LOW, SMALL_MAP)),
            (100, encode_bbm_header(STATUS_HIGH, SMALL_MAP)),
        )
        sink = MemorySink()

        pair = decode_headers(ByteCursor.from_bytes(image), Reporter([sink]), GEOMETRY,
                              confirm_retry=lambda: asked.append(True) or True)

        assert asked == [True]
        assert pair.low.signature_offset == 10
        assert pair.high.signature_offset == 100
        assert "BBM header signature not found!" in sink.lines

    def test_retry_declined(self):
        """Declining the retry is fatal to header decoding."""
        reporter = Reporter([MemorySink()])

        with pytest.raises(FormatError) as exc_info:
            decode_headers(ByteCursor.from_bytes(bytes(SMALL_IMAGE_SIZE)), reporter,
                           GEOMETRY, confirm_retry=lambda: False)

        assert exc_info.value.reason is FormatErrorReason.SIGNATURE_NOT_FOUND
        assert reporter.findings[-1].category is FindingCategory.FORMAT

    def test_no_confirmation_function(self):
        """Without a confirmation function there is no retry."""
        with pytest.raises(FormatError):
            decode_headers(ByteCursor.from_bytes(bytes(SMALL_IMAGE_SIZE)), Reporter())

    def test_single_retry_budget(self):
        """A second failure during the retry is fatal and is not retried."""
        asked = []
        image = small_image((3920, encode_bbm_header(STATUS_LOW, SMALL_MAP)))
        sink = MemorySink()

        with pytest.raises(FormatError):
            decode_headers(ByteCursor.from_bytes(image), Reporter([sink]), GEOMETRY,
                           confirm_retry=lambda: asked.append(True) or True)

        assert asked == [True]
        assert sink.lines[-1] == "BBM header signature not found during retry!"
        found = [line for line in sink.lines if line.startswith("Found BBM header")]
        assert found == ["Found BBM header at: 00000F50, block # 0 (0)"]

    def test_high_header_first(self):
        """A high header found first is reported."""
        image = small_image(
            (3900, encode_bbm_header(STATUS_HIGH, SMALL_MAP)),
            (3950, encode_bbm_header(STATUS_HIGH, SMALL_MAP)),
        )
        reporter = Reporter([MemorySink()])

        decode_headers(ByteCursor.from_bytes(image), reporter, GEOMETRY)

        messages = [f.message for f in reporter.failures if f.check.endswith(".status")]
        assert messages == [
            "Header status is BAD, the low table HAS NOT been located!!",
            "Header status is BAD, the low table HAS NOT been located!!",
        ]

    def test_second_low_header(self):
        """A second low header is reported."""
        image = small_image(
            (3900, encode_bbm_header(STATUS_LOW, SMALL_MAP)),
            (3950, encode_bbm_header(STATUS_LOW, SMALL_MAP)),
        )
        reporter = Reporter([MemorySink()])

        decode_headers(ByteCursor.from_bytes(image), reporter, GEOMETRY)

        failed = [f for f in reporter.failures if f.check == "high.status"]
        assert len(failed) == 1
        assert "already been located" in failed[0].message
