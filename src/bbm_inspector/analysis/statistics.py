"""
Statistical summaries of a scan.

This module provides the numbers reported after the main stages:
- Bad blocks per zone of consecutive blocks
- Marker-kind usage of each replacement map
- Length statistics of the runs found by the pattern passes
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np

from bbm_inspector.analysis.bbm_header import BbmHeader, MarkerKind
from bbm_inspector.analysis.patterns import RunRecord


# =============================================================================
# Bad Block Distribution
# =============================================================================


def bad_block_zone_counts(block_indices: Sequence[int], number_of_blocks: int,
                          zone_blocks: int = 256) -> np.ndarray:
    """
    Count bad blocks in each zone of zone_blocks consecutive blocks.

    Args:
        block_indices: Bad block numbers
        number_of_blocks: Blocks on the device
        zone_blocks: Blocks per zone

    Returns:
        Array with one count per zone (the last zone may be partial)

    Example:
        >>> bad_block_zone_counts([3, 100, 4095], 4096, 256)[[0, 15]]
        array([2, 1])
    """
    zone_count = -(-number_of_blocks // zone_blocks)
    if not block_indices:
        return np.zeros(zone_count, dtype=np.int64)
    zones = np.asarray(block_indices, dtype=np.int64) // zone_blocks
    return np.bincount(zones, minlength=zone_count)


def marker_kind_counts(header: BbmHeader) -> Dict[MarkerKind, int]:
    """Number of map slots of each kind, every kind listed."""
    counts = {kind: 0 for kind in MarkerKind}
    for marker in header.replacement_map:
        counts[marker.kind] += 1
    return counts


def format_marker_kind_counts(label: str, counts: Dict[MarkerKind, int]) -> str:
    """Report line for the marker-kind usage of one map."""
    parts = [f"{kind.value}={count}" for kind, count in counts.items() if count]
    return f"{label} usage: {', '.join(parts) if parts else 'empty'}"


# =============================================================================
# Run Summaries
# =============================================================================


@dataclass
class RunSummary:
    """
    Length statistics of the runs found by one pattern pass.

    Attributes:
        label: Pass name
        count: Number of runs
        total_bytes: Sum of run lengths
        longest: Longest run length (0 if none)
        mean_length: Mean run length (0.0 if none)
    """
    label: str
    count: int = 0
    total_bytes: int = 0
    longest: int = 0
    mean_length: float = 0.0

    def to_dict(self) -> dict:
        return {
            'label': self.label,
            'count': self.count,
            'total_bytes': self.total_bytes,
            'longest': self.longest,
            'mean_length': self.mean_length,
        }

    def __str__(self) -> str:
        if self.count == 0:
            return f"{self.label}: no runs"
        return (
            f"{self.label}: {self.count} runs, {self.total_bytes} bytes, "
            f"longest {self.longest}, mean {self.mean_length:.1f}"
        )


def summarize_runs(label: str, runs: List[RunRecord]) -> RunSummary:
    """Build the RunSummary for the runs of one pass."""
    if not runs:
        return RunSummary(label)
    lengths = np.array([run.length for run in runs], dtype=np.int64)
    return RunSummary(
        label=label,
        count=int(lengths.size),
        total_bytes=int(np.sum(lengths)),
        longest=int(np.max(lengths)),
        mean_length=float(np.mean(lengths)),
    )
