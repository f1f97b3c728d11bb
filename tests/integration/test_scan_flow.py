"""
Integration tests for complete scans.

Tests the pipeline over full-size synthetic NAND images, the pattern
passes, the JSON export and the command line.
"""

import pytest

from bbm_inspector.analysis import (
    FindingCategory,
    MemorySink,
    Reporter,
    Stage,
    run_scan,
    scan_e7_runs,
    scan_sequence_runs,
    scan_zero_runs,
)
from bbm_inspector.core import ByteCursor, ScanSession, ScanSettings
from bbm_inspector.main import Prompt, main
from bbm_inspector.utils import load_scan_results, save_scan_results
from tests.fixtures import (
    GEOMETRY,
    STANDARD_BAD_BLOCKS,
    build_image,
    build_standard_image,
    map_with,
    replacement,
)


def scan_bytes(data, settings=None, confirm_retry=lambda: False, cancel_check=None):
    """Run a scan over an in-memory image."""
    sink = MemorySink()
    with ByteCursor.from_bytes(data) as cursor:
        session = ScanSession(
            cursor=cursor,
            reporter=Reporter([sink]),
            settings=settings if settings is not None else ScanSettings(),
            confirm_retry=confirm_retry,
            cancel_check=cancel_check,
        )
        result = run_scan(session)
    return result, sink


@pytest.fixture(scope="module")
def standard_image():
    """Full-size image with consistent headers and bad blocks 3, 100, 4095."""
    return bytes(build_standard_image())


@pytest.fixture(scope="module")
def headerless_image():
    """Full-size image with bad blocks but no BBM headers."""
    return bytes(build_image(STANDARD_BAD_BLOCKS))


class TestFullScan:
    """Test scans of full-size images."""

    def test_consistent_image(self, standard_image):
        """A consistent image passes every check."""
        result, sink = scan_bytes(standard_image)

        assert result.completed
        assert result.image_size == GEOMETRY.total_bytes
        assert result.failures == []
        assert [(e.block_index, e.matched) for e in result.table] == [
            (3, True), (100, True), (4095, True),
        ]
        assert result.validation.full_match
        assert result.headers.distance == GEOMETRY.bytes_per_block
        assert " (3) Bad blocks found in file: 3 (3) 64 (100) FFF (4095)" in sink.lines
        assert "|  Replacement map contents match  |" in sink.lines

    def test_statistics_reported(self, standard_image):
        """Zone distribution and map usage follow the main stages."""
        result, sink = scan_bytes(standard_image)

        assert result.zone_counts[0] == 2
        assert result.zone_counts[15] == 1
        assert "Bad blocks per 256-block zone:" in sink.lines
        assert any(line.startswith("Map(1) usage:") for line in sink.lines)

    def test_corrupted_high_map(self):
        """One corrupted high entry gives exactly one mismatch."""
        image = build_standard_image(high_map=map_with({4: replacement(7)}))

        result, sink = scan_bytes(image)

        assert result.completed
        assert result.validation.full_match is False
        assert [m.map_index for m in result.validation.mismatches] == [4]
        assert result.validation.unmatched_blocks == [100]
        assert "|  Replacement map contents match  |" not in sink.lines

    def test_repeated_scans_identical(self, standard_image):
        """Two scans of the same source give identical findings and tables."""
        first, _ = scan_bytes(standard_image)
        second, _ = scan_bytes(standard_image)

        assert first.findings == second.findings
        assert first.table == second.table

    def test_missing_headers(self, headerless_image):
        """A missing signature aborts header decoding but keeps the table."""
        result, sink = scan_bytes(headerless_image)

        assert result.header_aborted
        assert result.headers is None
        assert result.validation is None
        assert result.table.block_indices() == list(STANDARD_BAD_BLOCKS)
        assert "BBM header signature not found!" in sink.lines
        assert any(f.category is FindingCategory.FORMAT for f in result.findings)
        assert "Bad blocks per 256-block zone:" in sink.lines

    def test_truncated_image(self):
        """A short image gives a partial table and a size finding."""
        image = build_image(bad_blocks=(5,), size=GEOMETRY.block_offset(100))

        result, _ = scan_bytes(image)

        assert result.aborted_stages == [Stage.LOCATOR, Stage.HEADER]
        assert result.table.complete is False
        assert result.table.blocks_sampled == 100
        assert result.table.block_indices() == [5]
        size_check = [f for f in result.findings if f.check == "image.size"][0]
        assert size_check.failed

    def test_cancel_between_stages(self, standard_image):
        """Cancellation stops the scan after the current stage."""
        result, sink = scan_bytes(standard_image, cancel_check=lambda: True)

        assert result.cancelled
        assert not result.completed
        assert result.headers is None
        assert len(result.table) == 3
        assert sink.lines[-1] == "Scan cancelled"


class TestPatternPasses:
    """Test the diagnostic pattern passes."""

    def test_e7_report_lines(self):
        """E7 runs are announced, then reported with their length."""
        sink = MemorySink()
        data = b"\x00" * 4 + b"\xE7" * 8 + b"\x00"

        runs = scan_e7_runs(ByteCursor.from_bytes(data), Reporter([sink]))

        assert [(r.start, r.length) for r in runs] == [(4, 8)]
        assert sink.lines[1:] == [
            "E7 run @ 00000004 started",
            "E7 run @ 00000004, 8 bytes",
        ]

    def test_zero_runs_at_end(self):
        """A zero run reaching the end of data is reported as remaining."""
        sink = MemorySink()
        data = bytes(13) + b"\x01" + bytes(20)

        scan_zero_runs(ByteCursor.from_bytes(data), Reporter([sink]))

        assert sink.lines[1:] == [
            "Zeros @ 00000000, 13 bytes,",
            "Zeros @ 0000000E, 20 bytes remaining",
        ]

    def test_sequence_runs(self):
        """Ascending runs are reported with their length."""
        sink = MemorySink()
        data = bytes(range(0x11)) + b"\x00"

        scan_sequence_runs(ByteCursor.from_bytes(data), Reporter([sink]))

        assert sink.lines[1:] == ["Sequence @ 00000000, 17 bytes"]

    def test_passes_run_after_header_abort(self):
        """Pattern passes and their summaries run even without headers."""
        data = b"\xE7" * 10 + bytes(3990)
        settings = ScanSettings(pattern_passes=["e7", "sequence"])

        result, sink = scan_bytes(data, settings=settings)

        assert result.header_aborted
        assert [(r.start, r.length) for r in result.runs["e7"]] == [(0, 10)]
        assert result.runs["sequence"] == []
        assert [s.label for s in result.run_summaries] == ["e7", "sequence"]
        assert "e7: 1 runs, 10 bytes, longest 10, mean 10.0" in sink.lines


class TestResultExport:
    """Test the JSON export of scan results."""

    def test_save_and_load(self, standard_image, tmp_path):
        """Exported results carry the table, headers and verdict."""
        result, _ = scan_bytes(standard_image)

        path = save_scan_results(result, tmp_path / "scan.json", image_path="dump.bin")
        data = load_scan_results(path)

        assert data["image"] == "dump.bin"
        assert data["completed"] is True
        assert data["validation"]["full_match"] is True
        assert [e["block_index"] for e in data["bad_blocks"]["entries"]] == [3, 100, 4095]
        assert data["headers"]["low"]["role"] == "low"
        assert data["headers"]["distance"] == GEOMETRY.bytes_per_block
        assert len(data["findings"]) == len(result.findings)

    def test_load_missing(self, tmp_path):
        """Loading a missing export returns None."""
        assert load_scan_results(tmp_path / "missing.json") is None


class TestCommandLine:
    """Test the bbm-inspector command."""

    @pytest.fixture(autouse=True)
    def isolated_settings(self, tmp_path, monkeypatch):
        """Keep the user settings file out of the tests."""
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))

    @pytest.fixture
    def image_file(self, standard_image, tmp_path):
        path = tmp_path / "dump.bin"
        path.write_bytes(standard_image)
        return path

    def test_consistent_image(self, image_file, tmp_path):
        """All stages ran: exit code 0, report and JSON written."""
        json_path = tmp_path / "scan.json"

        code = main([str(image_file), "--no-retry", "--log-file", str(tmp_path / "scan.log"),
                     "--json", str(json_path)])

        assert code == 0
        report = (tmp_path / "dump_out.txt").read_text(encoding="utf-8").splitlines()
        assert report[0] == " bbm-inspector version 1.0"
        assert report[1] == "=" * 27
        assert "|  Replacement map contents match  |" in report
        assert load_scan_results(json_path)["validation"]["full_match"] is True

    def test_no_report_file(self, image_file, tmp_path):
        """The text report can be switched off."""
        code = main([str(image_file), "--no-retry", "--no-report-file",
                     "--log-file", str(tmp_path / "scan.log")])

        assert code == 0
        assert not (tmp_path / "dump_out.txt").exists()

    def test_missing_image(self, tmp_path):
        """An image that cannot be opened gives exit code 1."""
        code = main([str(tmp_path / "missing.bin"), "--log-file", str(tmp_path / "scan.log")])

        assert code == 1

    def test_no_image_selected(self, tmp_path, monkeypatch):
        """Declining the file prompt gives exit code 1."""
        monkeypatch.setattr(Prompt, "ask", lambda *args, **kwargs: "")

        code = main(["--log-file", str(tmp_path / "scan.log")])

        assert code == 1

    def test_headers_missing(self, headerless_image, tmp_path):
        """Aborted header decoding gives exit code 2 and keeps the report."""
        path = tmp_path / "blank.bin"
        path.write_bytes(headerless_image)

        code = main([str(path), "--no-retry", "--log-file", str(tmp_path / "scan.log")])

        assert code == 2
        report = (tmp_path / "blank_out.txt").read_text(encoding="utf-8")
        assert " (3) Bad blocks found in file: 3 (3) 64 (100) FFF (4095)" in report
        assert "BBM header signature not found!" in report

    def test_invalid_config(self, image_file, tmp_path):
        """An invalid settings file stops before scanning."""
        config = tmp_path / "settings.json"
        config.write_text('{"e7_threshold": 0}', encoding="utf-8")

        code = main([str(image_file), "--config", str(config),
                     "--log-file", str(tmp_path / "scan.log")])

        assert code == 1
        assert not (tmp_path / "dump_out.txt").exists()
