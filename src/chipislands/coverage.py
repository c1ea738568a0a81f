from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

import numpy as np

from .errors import InvalidParameterError
from .models import CoverageProfile, ExtendedInterval

logger = logging.getLogger(__name__)


def build_coverage(
    intervals: Iterable[ExtendedInterval],
    chrom: Optional[str] = None,
) -> CoverageProfile:
    """Build a run-length coverage profile for one chromosome.

    Sweep-line over interval events: +1 at each start and -1 at the position
    after each end. Events are sorted once and prefix-summed, so construction is
    O(n log n) in the number of intervals regardless of the chromosome span.

    Parameters
    ----------
    intervals:
        Extended fragments, all on the same chromosome.
    chrom:
        Chromosome name. If None, taken from the first interval (an empty
        input then yields an empty profile named ``""``).
    """
    ivs = list(intervals)
    if chrom is None:
        chrom = ivs[0].chrom if ivs else ""
    if not ivs:
        return CoverageProfile.empty(chrom)

    for iv in ivs:
        if iv.chrom != chrom:
            raise InvalidParameterError(
                f"Interval on {iv.chrom} passed to coverage for {chrom}; "
                "group intervals by chromosome first."
            )

    starts = np.fromiter((iv.start for iv in ivs), dtype=np.int64, count=len(ivs))
    ends = np.fromiter((iv.end for iv in ivs), dtype=np.int64, count=len(ivs))

    positions = np.concatenate([starts, ends + 1])
    deltas = np.concatenate(
        [np.ones(len(ivs), dtype=np.int64), -np.ones(len(ivs), dtype=np.int64)]
    )

    boundaries, inverse = np.unique(positions, return_inverse=True)
    net = np.zeros(len(boundaries), dtype=np.int64)
    np.add.at(net, inverse, deltas)

    # A boundary where starts and ends cancel out does not change the depth.
    keep = net != 0
    boundaries = boundaries[keep]
    depth = np.cumsum(net[keep])

    # The last boundary is one past the largest end (depth back to zero).
    run_starts = boundaries[:-1]
    run_ends = boundaries[1:] - 1
    run_depths = depth[:-1]

    profile = CoverageProfile(
        chrom=chrom,
        starts=tuple(int(x) for x in run_starts),
        ends=tuple(int(x) for x in run_ends),
        depths=tuple(int(x) for x in run_depths),
    )
    logger.debug(
        "Coverage %s: %d intervals -> %d runs over %d bp (max depth %d)",
        chrom,
        len(ivs),
        len(profile.starts),
        profile.total_positions,
        profile.max_depth,
    )
    return profile


def group_by_chrom(intervals: Iterable[ExtendedInterval]) -> Dict[str, List[ExtendedInterval]]:
    by_chrom: Dict[str, List[ExtendedInterval]] = {}
    for iv in intervals:
        by_chrom.setdefault(iv.chrom, []).append(iv)
    return by_chrom


def build_coverage_by_chrom(intervals: Iterable[ExtendedInterval]) -> Dict[str, CoverageProfile]:
    """Union all intervals per chromosome and build one profile for each."""
    return {
        chrom: build_coverage(ivs, chrom=chrom)
        for chrom, ivs in group_by_chrom(intervals).items()
    }
