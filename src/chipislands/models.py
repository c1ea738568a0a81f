from __future__ import annotations

import bisect
import enum
from dataclasses import dataclass
from typing import Dict, Iterator, Tuple

import numpy as np

from .errors import InvalidParameterError


class Strand(str, enum.Enum):
    FORWARD = "+"
    REVERSE = "-"

    @classmethod
    def parse(cls, value: str) -> "Strand":
        if value in ("+", "-"):
            return cls(value)
        raise ValueError(f"Unknown strand: {value!r} (expected '+' or '-')")


@dataclass(frozen=True)
class Read:
    """A single aligned sequencing read.

    Coordinates are 1-based closed in internal representation.

    Attributes
    ----------
    chrom:
        Contig name as present in the BAM header.
    start:
        1-based leftmost aligned reference position.
    strand:
        Strand the read aligned to.
    length:
        Aligned length on the reference (>= 1).
    """

    chrom: str
    start: int
    strand: Strand
    length: int

    def __post_init__(self) -> None:
        if self.length < 1:
            raise InvalidParameterError(f"Read length must be >= 1, got {self.length}")

    @property
    def end(self) -> int:
        """1-based rightmost aligned reference position."""
        return self.start + self.length - 1


@dataclass(frozen=True)
class ExtendedInterval:
    """A read resized to the inferred fragment length (1-based closed)."""

    chrom: str
    start: int
    end: int
    strand: Strand

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise InvalidParameterError(
                f"Interval start {self.start} is past its end {self.end} on {self.chrom}"
            )


@dataclass(frozen=True)
class CoverageProfile:
    """Run-length encoded depth of coverage for one chromosome.

    Runs are contiguous (``ends[i] + 1 == starts[i + 1]``), cover the span from
    the smallest fragment start to the largest fragment end, and adjacent runs
    never share a depth. An empty profile has no runs.
    """

    chrom: str
    starts: Tuple[int, ...]
    ends: Tuple[int, ...]
    depths: Tuple[int, ...]

    @classmethod
    def empty(cls, chrom: str) -> "CoverageProfile":
        return cls(chrom=chrom, starts=(), ends=(), depths=())

    @property
    def is_empty(self) -> bool:
        return len(self.starts) == 0

    @property
    def span(self) -> Tuple[int, int]:
        if self.is_empty:
            raise ValueError(f"Coverage profile for {self.chrom} is empty")
        return self.starts[0], self.ends[-1]

    @property
    def total_positions(self) -> int:
        if self.is_empty:
            return 0
        lo, hi = self.span
        return hi - lo + 1

    @property
    def max_depth(self) -> int:
        return max(self.depths) if self.depths else 0

    def iter_runs(self) -> Iterator[Tuple[int, int, int]]:
        """Yield ``(start, end, depth)`` runs in ascending position order."""
        return zip(self.starts, self.ends, self.depths)

    def depth_at(self, pos: int) -> int:
        """Depth at a single position; 0 outside the profile span."""
        i = bisect.bisect_right(self.starts, pos) - 1
        if i < 0 or pos > self.ends[i]:
            return 0
        return self.depths[i]

    def values(self, start: int, end: int) -> np.ndarray:
        """Per-base depths over ``[start, end]`` (inclusive), zero-filled outside the span."""
        if end < start:
            return np.zeros(0, dtype=np.int64)
        out = np.zeros(end - start + 1, dtype=np.int64)
        if self.is_empty:
            return out
        first = max(bisect.bisect_right(self.starts, start) - 1, 0)
        last = bisect.bisect_right(self.starts, end)
        for i in range(first, last):
            lo = max(self.starts[i], start)
            hi = min(self.ends[i], end)
            if lo <= hi:
                out[lo - start : hi - start + 1] = self.depths[i]
        return out


@dataclass(frozen=True)
class Island:
    """Maximal run of positions with depth above the calling threshold."""

    chrom: str
    start: int
    end: int

    @property
    def width(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True)
class PeakSummary:
    """A ranked island with its coverage statistics."""

    chrom: str
    start: int
    end: int
    sum: int
    max: int
    max_position: int
    rank: int

    @property
    def width(self) -> int:
        return self.end - self.start + 1

    def as_dict(self) -> Dict[str, object]:
        return {
            "chromosome": self.chrom,
            "start": self.start,
            "end": self.end,
            "sum": self.sum,
            "max": self.max,
            "max_position": self.max_position,
            "rank": self.rank,
        }
