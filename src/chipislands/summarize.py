from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np

from .errors import InvalidParameterError
from .models import CoverageProfile, Island, PeakSummary

logger = logging.getLogger(__name__)


def island_metrics(island: Island, profile: CoverageProfile) -> Tuple[int, int, int]:
    """Return ``(sum, max, max_position)`` of depth over an island.

    ``max_position`` is the first position attaining the maximum, scanning in
    ascending order.
    """
    vals = profile.values(island.start, island.end)
    if vals.size == 0:
        return 0, 0, island.start
    i = int(np.argmax(vals))
    return int(vals.sum()), int(vals[i]), island.start + i


def _rank_key(p: PeakSummary) -> Tuple[int, int, int, str]:
    return (-p.max, -p.sum, p.start, p.chrom)


def summarize_islands(
    islands: Iterable[Island],
    profiles: Union[CoverageProfile, Mapping[str, CoverageProfile]],
    *,
    chromosome: Optional[str] = None,
    top_n: Optional[int] = None,
) -> List[PeakSummary]:
    """Compute statistics for islands and rank them.

    Ranking is by max depth (descending), then summed depth (descending), then
    start position (ascending); chromosome name breaks any remaining tie.
    Ranks are assigned over all islands before the optional chromosome filter,
    so filtered output keeps global ranks.

    Parameters
    ----------
    islands:
        Islands to summarize (not modified).
    profiles:
        The coverage the islands were called on: one profile, or a mapping
        chromosome -> profile.
    chromosome:
        If set, only report peaks on this chromosome.
    top_n:
        If set, keep only the ``top_n`` best-ranked peaks after filtering.
    """
    if top_n is not None and top_n < 1:
        raise InvalidParameterError(f"top_n must be >= 1, got {top_n}")

    if isinstance(profiles, CoverageProfile):
        by_chrom: Mapping[str, CoverageProfile] = {profiles.chrom: profiles}
    else:
        by_chrom = profiles

    unranked: List[PeakSummary] = []
    for isl in islands:
        profile = by_chrom.get(isl.chrom)
        if profile is None:
            raise InvalidParameterError(f"No coverage profile for island chromosome {isl.chrom}")
        total, peak, peak_pos = island_metrics(isl, profile)
        unranked.append(
            PeakSummary(
                chrom=isl.chrom,
                start=isl.start,
                end=isl.end,
                sum=total,
                max=peak,
                max_position=peak_pos,
                rank=0,
            )
        )

    unranked.sort(key=_rank_key)
    ranked = [
        PeakSummary(
            chrom=p.chrom,
            start=p.start,
            end=p.end,
            sum=p.sum,
            max=p.max,
            max_position=p.max_position,
            rank=i,
        )
        for i, p in enumerate(unranked, start=1)
    ]

    if chromosome is not None:
        ranked = [p for p in ranked if p.chrom == chromosome]
    if top_n is not None:
        ranked = ranked[:top_n]
    return ranked


def peak_stats(peaks: List[PeakSummary]) -> Dict[str, object]:
    """Small JSON-able digest of a peak list for summaries and reports."""
    per_chrom: Dict[str, int] = {}
    for p in peaks:
        per_chrom[p.chrom] = per_chrom.get(p.chrom, 0) + 1
    widths = [p.width for p in peaks]
    return {
        "n_peaks": len(peaks),
        "peaks_per_chrom": per_chrom,
        "max_depth": max((p.max for p in peaks), default=0),
        "median_width": float(np.median(widths)) if widths else 0.0,
        "total_bp": int(sum(widths)),
    }
