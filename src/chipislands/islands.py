from __future__ import annotations

import logging
from typing import List, Optional

from .models import CoverageProfile, Island
from .validation import validate_min_width, validate_threshold

logger = logging.getLogger(__name__)


def detect_islands(
    profile: CoverageProfile,
    threshold: int,
    *,
    min_width: int = 1,
) -> List[Island]:
    """Find maximal regions where depth is strictly above ``threshold``.

    The profile is scanned run by run in ascending order with a two-state
    (closed/open) machine: an island opens at the first position with
    ``depth > threshold`` and closes at the position before the first one with
    ``depth <= threshold``. An island still open at the end of the profile is
    closed at the last position.

    Islands from several interval sets must be called on the union of their
    coverage (see ``coverage.build_coverage_by_chrom``), not merged afterwards.

    Parameters
    ----------
    profile:
        Coverage for one chromosome.
    threshold:
        Non-negative depth threshold.
    min_width:
        Drop islands narrower than this many positions.

    Returns
    -------
    list of Island
        Non-overlapping, sorted by start.
    """
    validate_threshold(threshold)
    validate_min_width(min_width)

    islands: List[Island] = []
    open_start: Optional[int] = None
    last_end = 0

    for start, end, depth in profile.iter_runs():
        if depth > threshold:
            if open_start is None:
                open_start = start
        elif open_start is not None:
            islands.append(Island(chrom=profile.chrom, start=open_start, end=start - 1))
            open_start = None
        last_end = end

    if open_start is not None:
        islands.append(Island(chrom=profile.chrom, start=open_start, end=last_end))

    if min_width > 1:
        n_before = len(islands)
        islands = [isl for isl in islands if isl.width >= min_width]
        logger.debug(
            "%s: dropped %d islands narrower than %d bp",
            profile.chrom,
            n_before - len(islands),
            min_width,
        )

    logger.debug("%s: %d islands above depth %d", profile.chrom, len(islands), threshold)
    return islands
