"""
Structured findings produced by every scan stage.

Each detector transition and each validator check becomes one Finding.
Checks carry a pass/fail result; informational lines (listings, banners,
summaries) carry None.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Stage(Enum):
    """Scan stage that produced a finding."""
    IMAGE = "image"
    LOCATOR = "locator"
    HEADER = "header"
    VALIDATOR = "validator"
    PATTERN = "pattern"
    SUMMARY = "summary"


class FindingCategory(Enum):
    """
    What kind of problem a finding describes.
    """
    INFO = "info"
    """Listing or passed check."""

    CONSISTENCY = "consistency"
    """Parity, constant, count or map mismatch. Never fatal."""

    IO = "io"
    """Read failure or unexpected end of data. Aborts the current stage."""

    FORMAT = "format"
    """BBM signature missing. Fatal to header decoding."""


@dataclass(frozen=True)
class Finding:
    """
    One reported event.

    Attributes:
        stage: Stage that produced the finding
        check: Machine-readable key (e.g. "low.block_size.parity")
        message: Report line(s), formatted once
        passed: True/False for checks, None for informational lines
        category: Kind of problem (INFO when nothing is wrong)
        offset: Image offset the finding refers to, if any

    Example:
        >>> finding = Finding(Stage.HEADER, "low.map_size", "Map size= 0200 (512), Ok", True)
        >>> finding.failed
        False
    """
    stage: Stage
    check: str
    message: str
    passed: Optional[bool] = None
    category: FindingCategory = FindingCategory.INFO
    offset: Optional[int] = None

    @property
    def failed(self) -> bool:
        """True for checks that did not pass."""
        return self.passed is False

    @property
    def is_check(self) -> bool:
        """True if the finding carries a pass/fail result."""
        return self.passed is not None

    def to_dict(self) -> dict:
        """Serializable representation."""
        return {
            'stage': self.stage.value,
            'check': self.check,
            'message': self.message,
            'passed': self.passed,
            'category': self.category.value,
            'offset': self.offset,
        }


def ok_or(passed: bool, good: str = "Ok", bad: str = "bad!!") -> str:
    """Verdict word used in report lines."""
    return good if passed else bad
