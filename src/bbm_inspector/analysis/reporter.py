"""
Report sinks and report text generation.

Every finding is formatted once and fanned out, line by line, to any
number of sinks: the rich console, the persisted text report, or an
in-memory buffer for tests. The scan code depends only on the
emit-line capability, never on how many destinations there are.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, Union, TYPE_CHECKING

from rich.console import Console

from bbm_inspector.analysis.findings import Finding, FindingCategory, Stage

if TYPE_CHECKING:
    from bbm_inspector.analysis.scanner import BadBlockTable

# Module logger
logger = logging.getLogger(__name__)

# Styles used by the console sink
STYLE_FAILED = "bold red"
STYLE_PASSED = "green"
STYLE_BANNER = "bold"


# =============================================================================
# Sinks
# =============================================================================


class ReportSink(Protocol):
    """Line-oriented report destination."""

    def emit_line(self, line: str, style: Optional[str] = None) -> None:
        ...

    def close(self) -> None:
        ...


class ConsoleSink:
    """
    Interactive display of report lines through a rich Console.

    Markup and highlighting are disabled so report text (which contains
    brackets and hex numbers) is printed verbatim.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console if console is not None else Console(highlight=False)

    def emit_line(self, line: str, style: Optional[str] = None) -> None:
        self.console.print(line, style=style, markup=False, highlight=False,
                           soft_wrap=True)

    def close(self) -> None:
        self.console.file.flush()


class TextFileSink:
    """
    Persisted text report.

    Example:
        >>> sink = TextFileSink("dump_out.txt", banner=" bbm-inspector version 1.0")
        >>> sink.emit_line("Searching for bad block markers...")
        >>> sink.close()
    """

    def __init__(self, path: Union[str, Path], banner: Optional[str] = None):
        self.path = Path(path)
        self._file = open(self.path, 'w', encoding='utf-8')
        logger.debug(f"Opened report file {self.path}")
        if banner:
            self._file.write(generate_report_banner(banner) + "\n")

    def emit_line(self, line: str, style: Optional[str] = None) -> None:
        self._file.write(line + "\n")

    def close(self) -> None:
        if not self._file.closed:
            self._file.flush()
            self._file.close()
            logger.debug(f"Closed report file {self.path}")


class MemorySink:
    """Collects report lines in a list."""

    def __init__(self):
        self.lines: List[str] = []
        self.closed = False

    def emit_line(self, line: str, style: Optional[str] = None) -> None:
        self.lines.append(line)

    def close(self) -> None:
        self.closed = True


class CompositeSink:
    """
    Fans every line out to several sinks.

    Closing closes every sink even if one of them fails; the first
    failure is re-raised afterwards.
    """

    def __init__(self, sinks: Sequence[ReportSink] = ()):
        self.sinks: List[ReportSink] = list(sinks)

    def emit_line(self, line: str, style: Optional[str] = None) -> None:
        for sink in self.sinks:
            sink.emit_line(line, style)

    def close(self) -> None:
        first_error: Optional[Exception] = None
        for sink in self.sinks:
            try:
                sink.close()
            except OSError as e:
                logger.error(f"Failed to close report sink {sink!r}: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error


# =============================================================================
# Reporter
# =============================================================================


class Reporter:
    """
    Records findings and writes them to the report sinks.

    Attributes:
        findings: Every finding emitted so far, in order
        sink: Composite sink receiving the report lines

    Example:
        >>> memory = MemorySink()
        >>> reporter = Reporter([memory])
        >>> reporter.check(Stage.HEADER, "low.map_size", True, "Map size= 0200 (512), Ok")
        True
        >>> memory.lines
        ['Map size= 0200 (512), Ok']
    """

    def __init__(self, sinks: Iterable[ReportSink] = ()):
        self.findings: List[Finding] = []
        self.sink = CompositeSink(list(sinks))

    def emit(self, finding: Finding) -> Finding:
        """Record a finding and write its lines to every sink."""
        self.findings.append(finding)

        if finding.category in (FindingCategory.IO, FindingCategory.FORMAT):
            level, style = logging.ERROR, STYLE_FAILED
        elif finding.failed:
            level, style = logging.WARNING, STYLE_FAILED
        else:
            level, style = logging.DEBUG, None

        logger.log(level, f"[{finding.stage.value}] {finding.check}: {finding.message}")

        for line in finding.message.splitlines():
            self.sink.emit_line(line, style)
        return finding

    def info(self, stage: Stage, check: str, message: str,
             offset: Optional[int] = None) -> Finding:
        """Emit an informational line."""
        return self.emit(Finding(stage, check, message, None,
                                 FindingCategory.INFO, offset))

    def check(self, stage: Stage, check: str, passed: bool, message: str,
              offset: Optional[int] = None) -> bool:
        """
        Emit a consistency check result.

        Returns:
            The check result, so callers can chain on it
        """
        category = FindingCategory.INFO if passed else FindingCategory.CONSISTENCY
        self.emit(Finding(stage, check, message, bool(passed), category, offset))
        return bool(passed)

    def error(self, stage: Stage, check: str, message: str,
              category: FindingCategory = FindingCategory.IO,
              offset: Optional[int] = None) -> Finding:
        """Emit a stage-aborting I/O or format failure."""
        return self.emit(Finding(stage, check, message, False, category, offset))

    @property
    def failures(self) -> List[Finding]:
        """Findings whose checks did not pass."""
        return [f for f in self.findings if f.failed]

    def close(self) -> None:
        self.sink.close()


# =============================================================================
# Report Text Generation
# =============================================================================


def generate_report_banner(title: str) -> str:
    """
    Title line of a persisted report, underlined with '='.

    Example:
        >>> print(generate_report_banner(" bbm-inspector version 1.0"))
         bbm-inspector version 1.0
        ===========================
    """
    return f"{title}\n{'=' * (len(title) + 1)}"


def generate_box(lines: Sequence[str], corner: str = "+", edge: str = "-",
                 side: str = "|") -> str:
    """
    Frame lines in a text box.

    Example:
        >>> print(generate_box(["Replacement map contents match"]))
        +----------------------------------+
        |  Replacement map contents match  |
        +----------------------------------+
    """
    width = max(len(line) for line in lines) + 4
    border = corner + edge * width + corner
    body = [f"{side}{line.center(width)}{side}" for line in lines]
    return "\n".join([border, *body, border])


def generate_bad_block_list(table: 'BadBlockTable') -> str:
    """
    One-line summary of the bad-block table, each block in hex and decimal.

    Example:
        >>> generate_bad_block_list(table)
        ' (2) Bad blocks found in file: 3 (3) FFF (4095)'
    """
    blocks = "".join(f" {entry.block_index:X} ({entry.block_index})"
                     for entry in table)
    return f" ({len(table)}) Bad blocks found in file:{blocks}"


def generate_zone_table(zone_counts: Sequence[int], zone_blocks: int) -> str:
    """
    Distribution of bad blocks across zones of consecutive blocks.

    Only zones that contain bad blocks are listed.
    """
    lines = [f"Bad blocks per {zone_blocks}-block zone:"]
    listed = 0
    for zone, count in enumerate(zone_counts):
        if count == 0:
            continue
        first = zone * zone_blocks
        last = first + zone_blocks - 1
        lines.append(f"  Blocks {first:4d}-{last:4d}: {int(count)}")
        listed += 1
    if listed == 0:
        lines.append("  (none)")
    return "\n".join(lines)
