"""
Byte-stream pattern detectors.

This module provides small automata that look for filler patterns in a
NAND image:
- Runs of a constant byte (0xE7 erase filler, 0x00 blank areas)
- Runs of a strictly ascending byte sequence (test patterns)

Each detector is a pure transition function over explicit tagged states,
so every transition can be tested in isolation. The scan helpers at the
bottom drive a detector over a ByteCursor in its own linear pass.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Tuple, Union

from bbm_inspector.core.byte_cursor import ByteCursor

# Module logger
logger = logging.getLogger(__name__)

# Detector presets
E7_FILL_BYTE = 0xE7
E7_REPORT_THRESHOLD = 7
ZERO_FILL_BYTE = 0x00
ZERO_REPORT_THRESHOLD = 13
ASCENDING_MIN_LENGTH = 9


# =============================================================================
# Run Records and Events
# =============================================================================


class RunKind(Enum):
    """Kind of byte run."""
    CONSTANT = "constant"
    ASCENDING = "ascending"


@dataclass(frozen=True)
class RunRecord:
    """
    A detected run of bytes.

    Attributes:
        start: Offset of the first byte of the run
        length: Number of bytes in the run (>= 1)
        kind: CONSTANT or ASCENDING
        value: The repeated byte for CONSTANT runs, None for ASCENDING
    """
    start: int
    length: int
    kind: RunKind
    value: Optional[int] = None


@dataclass(frozen=True)
class RunStarted:
    """A run reached the report threshold; its length is not final yet."""
    start: int
    value: int


@dataclass(frozen=True)
class RunEnded:
    """A run finished, either on a different byte or at end of data."""
    record: RunRecord
    at_end_of_data: bool = False


RunEvent = Union[RunStarted, RunEnded]


# =============================================================================
# Constant-Byte Run Detector
# =============================================================================


@dataclass(frozen=True)
class Idle:
    """No run in progress."""


@dataclass(frozen=True)
class Counting:
    """Run in progress, still shorter than the report threshold."""
    start: int
    count: int


@dataclass(frozen=True)
class Announced:
    """Run just reached the report threshold."""
    start: int
    count: int


@dataclass(frozen=True)
class Extending:
    """Run is past the report threshold and still growing."""
    start: int
    count: int


RunState = Union[Idle, Counting, Announced, Extending]

IDLE = Idle()


class RunDetector:
    """
    Detects runs of a constant byte of at least report_threshold bytes.

    Args:
        target_byte: Byte value to look for
        report_threshold: Consecutive occurrences before a run is announced
        announce_start: Emit RunStarted when the threshold is reached

    Example:
        >>> detector = RunDetector(0xE7, 7)
        >>> state, events = detector.step(IDLE, 0xE7, 0)
        >>> state
        Counting(start=0, count=1)
    """

    def __init__(self, target_byte: int, report_threshold: int,
                 announce_start: bool = True):
        if not 0 <= target_byte <= 0xFF:
            raise ValueError(f"target_byte out of range: {target_byte}")
        if report_threshold < 1:
            raise ValueError(f"report_threshold must be >= 1: {report_threshold}")
        self.target_byte = target_byte
        self.report_threshold = report_threshold
        self.announce_start = announce_start

    def step(self, state: RunState, byte: int,
             offset: int) -> Tuple[RunState, List[RunEvent]]:
        """
        Advance the automaton by one byte.

        Args:
            state: Current state
            byte: Byte read at offset
            offset: Absolute offset of byte

        Returns:
            Tuple of (new state, events emitted by this transition)
        """
        is_target = byte == self.target_byte

        if isinstance(state, Idle):
            if not is_target:
                return IDLE, []
            return self._count(offset, 1)

        if isinstance(state, Counting):
            if not is_target:
                return IDLE, []
            return self._count(state.start, state.count + 1)

        # Announced or Extending
        if is_target:
            return Extending(state.start, state.count + 1), []
        return IDLE, [RunEnded(self._record(state))]

    def finish(self, state: RunState) -> List[RunEvent]:
        """Flush a reportable run at end of data."""
        if isinstance(state, (Announced, Extending)):
            return [RunEnded(self._record(state), at_end_of_data=True)]
        return []

    def _count(self, start: int, count: int) -> Tuple[RunState, List[RunEvent]]:
        if count < self.report_threshold:
            return Counting(start, count), []
        events: List[RunEvent] = []
        if self.announce_start:
            events.append(RunStarted(start, self.target_byte))
        return Announced(start, count), events

    def _record(self, state: Union[Announced, Extending]) -> RunRecord:
        return RunRecord(state.start, state.count, RunKind.CONSTANT, self.target_byte)

    def scan(self, cursor: ByteCursor) -> Iterator[RunEvent]:
        """
        Run the detector over the whole image from offset 0.

        Yields:
            RunStarted and RunEnded events in image order
        """
        state: RunState = IDLE
        for offset, byte in cursor.iter_from(0):
            state, events = self.step(state, byte, offset)
            yield from events
        yield from self.finish(state)


def e7_run_detector(threshold: int = E7_REPORT_THRESHOLD) -> RunDetector:
    """Detector for 0xE7 filler runs, announcing each run as it starts."""
    return RunDetector(E7_FILL_BYTE, threshold, announce_start=True)


def zero_run_detector(threshold: int = ZERO_REPORT_THRESHOLD) -> RunDetector:
    """Detector for zero-filled areas, reporting total lengths only."""
    return RunDetector(ZERO_FILL_BYTE, threshold, announce_start=False)


# =============================================================================
# Ascending Run Detector
# =============================================================================


@dataclass(frozen=True)
class AscendingState:
    """Run of strictly incrementing bytes in progress."""
    start: int
    count: int
    last_byte: int


class AscendingRunDetector:
    """
    Detects runs where each byte is the previous byte plus one.

    0xFF followed by 0x00 breaks a run; there is no wraparound.

    Args:
        min_length: Shortest run that is reported (default 9)

    Example:
        >>> detector = AscendingRunDetector()
        >>> events = list(detector.scan(ByteCursor.from_bytes(bytes(range(1, 10)) + b"\\x00")))
        >>> events[0].record.length
        9
    """

    def __init__(self, min_length: int = ASCENDING_MIN_LENGTH):
        if min_length < 2:
            raise ValueError(f"min_length must be >= 2: {min_length}")
        self.min_length = min_length

    def step(self, state: Optional[AscendingState], byte: int,
             offset: int) -> Tuple[AscendingState, List[RunEvent]]:
        """Advance by one byte; state is None before the first byte."""
        if state is None:
            return AscendingState(offset, 1, byte), []

        if byte == state.last_byte + 1:
            return AscendingState(state.start, state.count + 1, byte), []

        events: List[RunEvent] = []
        if state.count >= self.min_length:
            events.append(RunEnded(self._record(state)))
        return AscendingState(offset, 1, byte), events

    def finish(self, state: Optional[AscendingState]) -> List[RunEvent]:
        """Flush a reportable run at end of data."""
        if state is not None and state.count >= self.min_length:
            return [RunEnded(self._record(state), at_end_of_data=True)]
        return []

    @staticmethod
    def _record(state: AscendingState) -> RunRecord:
        return RunRecord(state.start, state.count, RunKind.ASCENDING)

    def scan(self, cursor: ByteCursor) -> Iterator[RunEvent]:
        """Run the detector over the whole image from offset 0."""
        state: Optional[AscendingState] = None
        for offset, byte in cursor.iter_from(0):
            state, events = self.step(state, byte, offset)
            yield from events
        yield from self.finish(state)
