"""
Context managers for the NAND bad-block map inspector.

Provides safe resource management for a scan: the image is opened once,
read-only, and the report sinks are opened before scanning. Both are
closed on every exit path.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from rich.console import Console

from bbm_inspector.analysis.reporter import (
    ConsoleSink,
    ReportSink,
    Reporter,
    TextFileSink,
)
from bbm_inspector.core.byte_cursor import ByteCursor
from bbm_inspector.utils.logging import log_operation


def report_path_for(image_path: Union[str, Path], suffix: str = "_out.txt") -> Path:
    """
    Path of the persisted report for an image.

    Example:
        >>> report_path_for("/dumps/cpx00.bin")
        PosixPath('/dumps/cpx00_out.txt')
    """
    image_path = Path(image_path)
    return image_path.with_name(image_path.stem + suffix)


class ImageSourceContext:
    """
    Context manager for a read-only image source.

    Attributes:
        image_path: Path of the image
        cursor: ByteCursor over the image (set during context)

    Example:
        >>> with ImageSourceContext("dump.bin") as cursor:
        ...     table = locate_bad_blocks(cursor, geometry)
        >>> # Image automatically closed
    """

    def __init__(self, image_path: Union[str, Path]):
        self.image_path = Path(image_path)
        self.cursor: Optional[ByteCursor] = None

    def __enter__(self) -> ByteCursor:
        """
        Open the image.

        Raises:
            OSError: If the image cannot be opened
        """
        logging.debug(f"Opening {self.image_path} (read-only)")
        try:
            self.cursor = ByteCursor.open(self.image_path)
        except OSError as e:
            logging.error(f"Failed to open image: {e}")
            raise
        log_operation("open_image", f"{self.image_path} (read-only)")
        return self.cursor

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.cursor is not None:
            try:
                self.cursor.close()
            except OSError as close_error:
                logging.error(f"Failed to close image: {close_error}")
            self.cursor = None

        # Don't suppress exceptions
        return False


class ReportContext:
    """
    Context manager for the report sinks of one scan.

    Builds a Reporter writing to the rich console and, when a report path
    is given, to a persisted text report that starts with a banner.
    Findings already emitted are kept if the scan fails; the sinks are
    flushed and closed either way.

    Attributes:
        report_path: Text report path, or None for console only
        banner: First line of the text report
        reporter: Reporter (set during context)

    Example:
        >>> with ReportContext("dump_out.txt", banner=" bbm-inspector version 1.0") as reporter:
        ...     reporter.info(Stage.IMAGE, "image.open", "Opened dump.bin")
    """

    def __init__(self, report_path: Optional[Union[str, Path]] = None,
                 banner: Optional[str] = None,
                 console: Optional[Console] = None):
        self.report_path = Path(report_path) if report_path is not None else None
        self.banner = banner
        self.console = console
        self.reporter: Optional[Reporter] = None

    def __enter__(self) -> Reporter:
        """
        Open the sinks.

        Raises:
            OSError: If the text report cannot be created
        """
        sinks: List[ReportSink] = [ConsoleSink(self.console)]
        if self.report_path is not None:
            sinks.append(TextFileSink(self.report_path, banner=self.banner))
            logging.info(f"Writing report to {self.report_path}")
        self.reporter = Reporter(sinks)
        return self.reporter

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.reporter is not None:
            try:
                self.reporter.close()
            except OSError as close_error:
                logging.error(f"Failed to close report: {close_error}")
            self.reporter = None

        # Don't suppress exceptions
        return False
