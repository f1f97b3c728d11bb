"""
Scan pipeline.

Runs the stages of one scan in order over a ScanSession:
1. Image size check
2. Factory bad-block sampling
3. BBM header search and decoding
4. Cross-validation (only when both headers decoded)
5. Optional pattern passes over the whole image
6. Statistics

An I/O failure aborts only the stage it happened in. A missing BBM
signature is fatal to header decoding, but the bad-block table is still
reported.
"""

import time
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from bbm_inspector.analysis.bbm_header import HeaderPair, decode_headers
from bbm_inspector.analysis.findings import Finding, FindingCategory, Stage
from bbm_inspector.analysis.patterns import (
    AscendingRunDetector,
    RunEnded,
    RunRecord,
    RunStarted,
    e7_run_detector,
    zero_run_detector,
)
from bbm_inspector.analysis.reporter import Reporter, generate_zone_table
from bbm_inspector.analysis.scanner import BadBlockTable, locate_bad_blocks
from bbm_inspector.analysis.statistics import (
    RunSummary,
    bad_block_zone_counts,
    format_marker_kind_counts,
    marker_kind_counts,
    summarize_runs,
)
from bbm_inspector.analysis.validator import ValidationResult, cross_validate
from bbm_inspector.core.byte_cursor import ByteCursor
from bbm_inspector.core.errors import FormatError, ImageIOError
from bbm_inspector.core.geometry import validate_image_size
from bbm_inspector.core.session import ScanSession
from bbm_inspector.core.settings import PatternPass, ScanSettings

# Module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Scan Result
# =============================================================================


@dataclass
class ScanResult:
    """
    Everything one scan produced.

    Attributes:
        table: Bad-block table (possibly partial)
        headers: Decoded header pair, None if decoding aborted
        validation: Cross-validation outcome, None if it did not run
        runs: Runs found by each pattern pass, keyed by pass name
        run_summaries: Length statistics per pattern pass
        zone_counts: Bad blocks per zone
        findings: Findings emitted during this scan, in order
        aborted_stages: Stages that stopped early
        cancelled: The session was cancelled between stages
        image_size: Size of the image in bytes
        duration: Wall-clock time of the scan in seconds
    """
    table: BadBlockTable = field(default_factory=BadBlockTable)
    headers: Optional[HeaderPair] = None
    validation: Optional[ValidationResult] = None
    runs: Dict[str, List[RunRecord]] = field(default_factory=dict)
    run_summaries: List[RunSummary] = field(default_factory=list)
    zone_counts: List[int] = field(default_factory=list)
    findings: List[Finding] = field(default_factory=list)
    aborted_stages: List[Stage] = field(default_factory=list)
    cancelled: bool = False
    image_size: int = 0
    duration: float = field(default=0.0, compare=False)

    @property
    def header_aborted(self) -> bool:
        return Stage.HEADER in self.aborted_stages

    @property
    def completed(self) -> bool:
        """Every stage ran to its end."""
        return not self.aborted_stages and not self.cancelled

    @property
    def failures(self) -> List[Finding]:
        return [f for f in self.findings if f.failed]


# =============================================================================
# Pattern Passes
# =============================================================================


def scan_e7_runs(cursor: ByteCursor, reporter: Reporter,
                 threshold: int = 7) -> List[RunRecord]:
    """Report runs of 0xE7 filler, announcing each one as it starts."""
    runs: List[RunRecord] = []
    reporter.info(Stage.PATTERN, "pattern.e7", "Searching for E7 runs...")
    for event in e7_run_detector(threshold).scan(cursor):
        if isinstance(event, RunStarted):
            reporter.info(Stage.PATTERN, "pattern.e7.start",
                          f"E7 run @ {event.start:08X} started", offset=event.start)
        elif isinstance(event, RunEnded):
            record = event.record
            runs.append(record)
            reporter.info(Stage.PATTERN, "pattern.e7.run",
                          f"E7 run @ {record.start:08X}, {record.length} bytes",
                          offset=record.start)
    return runs


def scan_zero_runs(cursor: ByteCursor, reporter: Reporter,
                   threshold: int = 13) -> List[RunRecord]:
    """Report zero-filled areas."""
    runs: List[RunRecord] = []
    reporter.info(Stage.PATTERN, "pattern.zeros", "Searching for zero-filled areas...")
    for event in zero_run_detector(threshold).scan(cursor):
        if not isinstance(event, RunEnded):
            continue
        record = event.record
        runs.append(record)
        if event.at_end_of_data:
            message = f"Zeros @ {record.start:08X}, {record.length} bytes remaining"
        else:
            message = f"Zeros @ {record.start:08X}, {record.length} bytes,"
        reporter.info(Stage.PATTERN, "pattern.zeros.run", message, offset=record.start)
    return runs


def scan_sequence_runs(cursor: ByteCursor, reporter: Reporter,
                       min_length: int = 9) -> List[RunRecord]:
    """Report strictly ascending byte runs."""
    runs: List[RunRecord] = []
    reporter.info(Stage.PATTERN, "pattern.sequence", "Searching for sequence patterns...")
    for event in AscendingRunDetector(min_length).scan(cursor):
        if not isinstance(event, RunEnded):
            continue
        record = event.record
        runs.append(record)
        reporter.info(Stage.PATTERN, "pattern.sequence.run",
                      f"Sequence @ {record.start:08X}, {record.length} bytes",
                      offset=record.start)
    return runs


def run_pattern_pass(cursor: ByteCursor, pattern: PatternPass,
                     reporter: Reporter, settings: ScanSettings) -> List[RunRecord]:
    """Run one diagnostic pass with the thresholds from settings."""
    if pattern is PatternPass.E7:
        return scan_e7_runs(cursor, reporter, settings.e7_threshold)
    if pattern is PatternPass.ZEROS:
        return scan_zero_runs(cursor, reporter, settings.zero_threshold)
    return scan_sequence_runs(cursor, reporter, settings.ascending_min_length)


# =============================================================================
# Pipeline
# =============================================================================


def run_scan(session: ScanSession) -> ScanResult:
    """
    Run every stage of a scan.

    Args:
        session: Scan context (cursor, reporter, geometry, settings)

    Returns:
        ScanResult with the findings of this run

    Example:
        >>> with ByteCursor.open("dump.bin") as cursor:
        ...     session = ScanSession(cursor=cursor, reporter=Reporter([ConsoleSink()]))
        ...     result = run_scan(session)
        >>> result.validation.full_match
        True
    """
    cursor = session.cursor
    reporter = session.reporter

    result = ScanResult()
    first_finding = len(reporter.findings)
    start_time = time.time()

    logger.info(f"Starting scan of {cursor.name} ({session})")

    try:
        _run_stages(session, result)
    finally:
        result.findings = reporter.findings[first_finding:]
        result.duration = time.time() - start_time

    logger.info(
        f"Scan of {cursor.name} finished in {result.duration:.2f}s: "
        f"{len(result.failures)} failed checks, "
        f"aborted stages: {[s.value for s in result.aborted_stages] or 'none'}"
    )
    return result


def _run_stages(session: ScanSession, result: ScanResult) -> None:
    cursor = session.cursor
    reporter = session.reporter
    geometry = session.geometry
    settings = session.settings

    # Image size
    try:
        result.image_size = cursor.size
    except ImageIOError as e:
        reporter.error(Stage.IMAGE, "image.size", f"Cannot read image: {e}")
        result.aborted_stages.append(Stage.IMAGE)
        return

    valid, error = validate_image_size(geometry, result.image_size)
    reporter.check(Stage.IMAGE, "image.size", valid,
                   f"Image size {result.image_size:,} bytes, Ok" if valid
                   else f"{error}!!")

    # Bad blocks
    result.table = locate_bad_blocks(cursor, geometry, reporter)
    if not result.table.complete:
        result.aborted_stages.append(Stage.LOCATOR)
    if _cancelled(session, result):
        return

    # BBM headers
    try:
        result.headers = decode_headers(
            cursor, reporter, geometry,
            confirm_retry=session.confirm_retry,
            search_start_permille=settings.header_search_start_permille,
        )
    except FormatError as e:
        logger.error(f"Header decoding aborted: {e}")
        result.aborted_stages.append(Stage.HEADER)
    except ImageIOError as e:
        reporter.error(Stage.HEADER, "header.read_error", f"BBM: {e}",
                       FindingCategory.IO, offset=e.offset)
        result.aborted_stages.append(Stage.HEADER)
    if _cancelled(session, result):
        return

    # Cross-validation
    if result.headers is not None:
        result.validation = cross_validate(
            result.headers, result.table, reporter, geometry,
            settings.max_header_distance,
        )
        if _cancelled(session, result):
            return

    # Pattern passes
    for pattern in settings.pattern_passes:
        try:
            result.runs[pattern.value] = run_pattern_pass(cursor, pattern, reporter, settings)
        except ImageIOError as e:
            reporter.error(Stage.PATTERN, f"pattern.{pattern.value}.read_error",
                           f"Pattern pass {pattern.value}: {e}", offset=e.offset)
            result.aborted_stages.append(Stage.PATTERN)
        if _cancelled(session, result):
            return

    _report_statistics(session, result)


def _report_statistics(session: ScanSession, result: ScanResult) -> None:
    reporter = session.reporter
    geometry = session.geometry
    zone_blocks = session.settings.zone_blocks

    zones = bad_block_zone_counts(result.table.block_indices(),
                                  geometry.number_of_blocks, zone_blocks)
    result.zone_counts = [int(count) for count in zones]
    reporter.info(Stage.SUMMARY, "summary.zones",
                  generate_zone_table(result.zone_counts, zone_blocks))

    if result.headers is not None:
        for number, header in enumerate((result.headers.low, result.headers.high)):
            reporter.info(Stage.SUMMARY, f"summary.map{number}",
                          format_marker_kind_counts(f"Map({number})",
                                                    marker_kind_counts(header)))

    for name, runs in result.runs.items():
        summary = summarize_runs(name, runs)
        result.run_summaries.append(summary)
        reporter.info(Stage.SUMMARY, f"summary.runs.{name}", str(summary))


def _cancelled(session: ScanSession, result: ScanResult) -> bool:
    if session.is_cancelled():
        result.cancelled = True
        session.reporter.info(Stage.SUMMARY, "summary.cancelled", "Scan cancelled")
        return True
    return False
