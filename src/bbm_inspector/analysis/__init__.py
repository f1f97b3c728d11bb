"""
Analysis module for the NAND bad-block map inspector.

This module provides the byte-pattern detectors, the factory bad-block
locator, the BBM header decoder, the cross-validator, statistics and the
scan pipeline that ties them together.

Submodules:
    findings: Structured findings emitted by every stage
    reporter: Report sinks and report text generation
    patterns: Constant-byte and ascending run detectors
    scanner: Factory bad-block sampling
    bbm_header: BBM header search and decoding
    validator: Cross-validation of both headers against the table
    statistics: Zone distribution, map usage and run summaries
    pipeline: Stage sequencing for one scan
"""

from bbm_inspector.analysis.findings import (
    Stage,
    FindingCategory,
    Finding,
    ok_or,
)

from bbm_inspector.analysis.reporter import (
    ReportSink,
    ConsoleSink,
    TextFileSink,
    MemorySink,
    CompositeSink,
    Reporter,
    generate_report_banner,
    generate_box,
    generate_bad_block_list,
    generate_zone_table,
)

from bbm_inspector.analysis.patterns import (
    RunKind,
    RunRecord,
    RunStarted,
    RunEnded,
    Idle,
    Counting,
    Announced,
    Extending,
    IDLE,
    RunDetector,
    AscendingState,
    AscendingRunDetector,
    e7_run_detector,
    zero_run_detector,
)

from bbm_inspector.analysis.scanner import (
    BadBlockEntry,
    BadBlockTable,
    is_bad_block_marker,
    locate_bad_blocks,
)

from bbm_inspector.analysis.bbm_header import (
    BBM_SIGNATURE,
    MarkerKind,
    MarkerValue,
    HeaderRole,
    BbmHeader,
    HeaderPair,
    classify_marker,
    classify_status,
    is_odd_parity,
    with_odd_parity,
    derive_map_length,
    signature_step,
    find_signature,
    decode_header,
    decode_headers,
)

from bbm_inspector.analysis.validator import (
    MapMismatch,
    ValidationResult,
    cross_validate,
)

from bbm_inspector.analysis.statistics import (
    RunSummary,
    bad_block_zone_counts,
    marker_kind_counts,
    summarize_runs,
)

from bbm_inspector.analysis.pipeline import (
    ScanResult,
    run_scan,
    run_pattern_pass,
    scan_e7_runs,
    scan_zero_runs,
    scan_sequence_runs,
)

__all__ = [
    # Findings
    "Stage",
    "FindingCategory",
    "Finding",
    "ok_or",

    # Reporting
    "ReportSink",
    "ConsoleSink",
    "TextFileSink",
    "MemorySink",
    "CompositeSink",
    "Reporter",
    "generate_report_banner",
    "generate_box",
    "generate_bad_block_list",
    "generate_zone_table",

    # Pattern detectors
    "RunKind",
    "RunRecord",
    "RunStarted",
    "RunEnded",
    "Idle",
    "Counting",
    "Announced",
    "Extending",
    "IDLE",
    "RunDetector",
    "AscendingState",
    "AscendingRunDetector",
    "e7_run_detector",
    "zero_run_detector",

    # Bad-block locator
    "BadBlockEntry",
    "BadBlockTable",
    "is_bad_block_marker",
    "locate_bad_blocks",

    # BBM headers
    "BBM_SIGNATURE",
    "MarkerKind",
    "MarkerValue",
    "HeaderRole",
    "BbmHeader",
    "HeaderPair",
    "classify_marker",
    "classify_status",
    "is_odd_parity",
    "with_odd_parity",
    "derive_map_length",
    "signature_step",
    "find_signature",
    "decode_header",
    "decode_headers",

    # Cross-validation
    "MapMismatch",
    "ValidationResult",
    "cross_validate",

    # Statistics
    "RunSummary",
    "bad_block_zone_counts",
    "marker_kind_counts",
    "summarize_runs",

    # Pipeline
    "ScanResult",
    "run_scan",
    "run_pattern_pass",
    "scan_e7_runs",
    "scan_zero_runs",
    "scan_sequence_runs",
]
