from __future__ import annotations

import concurrent.futures
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from tqdm import tqdm

from .coverage import build_coverage
from .errors import EmptyInputError, InvalidParameterError
from .fraglen import CrossCorrelation, estimate_fragment_length
from .fragments import extend_reads
from .islands import detect_islands
from .models import CoverageProfile, Island, PeakSummary, Read
from .summarize import peak_stats, summarize_islands
from .validation import (
    AUTO,
    parse_fragment_length,
    validate_min_width,
    validate_threshold,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeakCallingConfig:
    """Settings for one peak-calling run.

    Attributes
    ----------
    threshold:
        Depth must be strictly greater than this to be part of a peak.
    fragment_length:
        Fragment length in bp, or ``"auto"`` to estimate it by strand
        cross-correlation.
    min_width:
        Minimum island width in bp.
    jobs:
        Worker processes; 1 runs everything in-process.
    timeout:
        Optional deadline in seconds. Chromosomes not finished by then are
        dropped from the output.
    max_shift:
        Largest strand shift evaluated when ``fragment_length="auto"``.
    top_n:
        Report only the best ``top_n`` peaks.
    strict:
        Raise EmptyInputError instead of warning when there are no reads.
    """

    threshold: int
    fragment_length: Union[int, str] = AUTO
    min_width: int = 1
    jobs: int = 1
    timeout: Optional[float] = None
    max_shift: int = 500
    top_n: Optional[int] = None
    strict: bool = False

    def validate(self) -> "PeakCallingConfig":
        """Check every setting; return a copy with ``fragment_length`` normalized."""
        validate_threshold(self.threshold)
        validate_min_width(self.min_width)
        if self.jobs < 1:
            raise InvalidParameterError(f"jobs must be >= 1, got {self.jobs}")
        if self.timeout is not None and self.timeout <= 0:
            raise InvalidParameterError(f"timeout must be > 0, got {self.timeout}")
        if self.max_shift < 1:
            raise InvalidParameterError(f"max_shift must be >= 1, got {self.max_shift}")
        if self.top_n is not None and self.top_n < 1:
            raise InvalidParameterError(f"top_n must be >= 1, got {self.top_n}")
        return replace(self, fragment_length=parse_fragment_length(self.fragment_length))


@dataclass
class PeakCallingResult:
    peaks: List[PeakSummary]
    fragment_length: Optional[int]
    profiles: Dict[str, CoverageProfile] = field(default_factory=dict)
    islands: Dict[str, List[Island]] = field(default_factory=dict)
    reads_per_chrom: Dict[str, int] = field(default_factory=dict)
    skipped_chroms: List[str] = field(default_factory=list)
    cross_correlation: Optional[CrossCorrelation] = None
    runtime_seconds: float = 0.0

    def as_dict(self) -> Dict[str, object]:
        return {
            "fragment_length": self.fragment_length,
            "fragment_length_estimate": (
                self.cross_correlation.as_dict() if self.cross_correlation is not None else None
            ),
            "reads_per_chrom": dict(self.reads_per_chrom),
            "islands_per_chrom": {c: len(v) for c, v in self.islands.items()},
            "skipped_chroms": list(self.skipped_chroms),
            "peaks": peak_stats(self.peaks),
            "runtime_seconds": float(self.runtime_seconds),
        }


def call_chromosome(
    chrom: str,
    reads: List[Read],
    fragment_length: int,
    threshold: int,
    min_width: int = 1,
    chrom_length: Optional[int] = None,
) -> Tuple[CoverageProfile, List[Island]]:
    """Extension, coverage and island detection for the reads of one chromosome."""
    intervals = extend_reads(reads, fragment_length)
    if chrom_length is not None:
        intervals = [
            iv if iv.end <= chrom_length else replace(iv, end=max(iv.start, chrom_length))
            for iv in intervals
        ]
    profile = build_coverage(intervals, chrom=chrom)
    islands = detect_islands(profile, threshold, min_width=min_width)
    return profile, islands


def _group_reads(reads: Iterable[Read]) -> Dict[str, List[Read]]:
    by_chrom: Dict[str, List[Read]] = {}
    for r in reads:
        by_chrom.setdefault(r.chrom, []).append(r)
    return by_chrom


def _run_sequential(
    jobs: Dict[str, List[Read]],
    *,
    fragment_length: int,
    config: PeakCallingConfig,
    chrom_lengths: Mapping[str, int],
    deadline: Optional[float],
    progress: bool,
) -> Tuple[Dict[str, Tuple[CoverageProfile, List[Island]]], List[str]]:
    done: Dict[str, Tuple[CoverageProfile, List[Island]]] = {}
    skipped: List[str] = []
    chroms: Iterable[str] = list(jobs)
    if progress:
        chroms = tqdm(chroms, unit="chrom", desc="Calling peaks")
    for chrom in chroms:
        if deadline is not None and time.monotonic() > deadline:
            skipped.append(chrom)
            continue
        done[chrom] = call_chromosome(
            chrom,
            jobs[chrom],
            fragment_length,
            config.threshold,
            config.min_width,
            chrom_lengths.get(chrom),
        )
    return done, skipped


def _run_parallel(
    jobs: Dict[str, List[Read]],
    *,
    fragment_length: int,
    config: PeakCallingConfig,
    chrom_lengths: Mapping[str, int],
    deadline: Optional[float],
    progress: bool,
) -> Tuple[Dict[str, Tuple[CoverageProfile, List[Island]]], List[str]]:
    done: Dict[str, Tuple[CoverageProfile, List[Island]]] = {}
    timeout = max(0.0, deadline - time.monotonic()) if deadline is not None else None
    executor = concurrent.futures.ProcessPoolExecutor(max_workers=config.jobs)
    try:
        futures = {
            executor.submit(
                call_chromosome,
                chrom,
                chrom_reads,
                fragment_length,
                config.threshold,
                config.min_width,
                chrom_lengths.get(chrom),
            ): chrom
            for chrom, chrom_reads in jobs.items()
        }
        finished, pending = concurrent.futures.wait(futures, timeout=timeout)
        it: Iterable[concurrent.futures.Future] = finished
        if progress:
            it = tqdm(finished, unit="chrom", desc="Collecting chromosomes")
        for fut in it:
            done[futures[fut]] = fut.result()
        skipped = sorted(futures[f] for f in pending)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    return done, skipped


def call_peaks(
    reads: Iterable[Read],
    config: PeakCallingConfig,
    *,
    chrom_lengths: Optional[Mapping[str, int]] = None,
    progress: bool = False,
) -> PeakCallingResult:
    """Run reads -> fragments -> coverage -> islands -> ranked peaks.

    Chromosomes are independent: with ``config.jobs > 1`` each one is handled
    by a separate worker process that owns its reads, coverage and islands.
    Ranking happens once, over every chromosome that finished.

    Parameters
    ----------
    reads:
        Aligned reads, any order.
    config:
        Run settings; validated before any work starts.
    chrom_lengths:
        Optional reference lengths; forward fragments are clipped at the
        chromosome end and the cross-correlation background uses them.
    progress:
        Show tqdm progress bars.
    """
    t0 = time.time()
    config = config.validate()
    deadline = time.monotonic() + config.timeout if config.timeout is not None else None
    chrom_lengths = chrom_lengths or {}

    reads = list(reads)
    if not reads:
        if config.strict:
            raise EmptyInputError("No reads to call peaks from.")
        logger.warning("No reads to call peaks from; returning an empty peak list.")
        fixed = config.fragment_length if isinstance(config.fragment_length, int) else None
        return PeakCallingResult(peaks=[], fragment_length=fixed, runtime_seconds=time.time() - t0)

    cross_correlation: Optional[CrossCorrelation] = None
    if config.fragment_length == AUTO:
        cross_correlation = estimate_fragment_length(
            reads, max_shift=config.max_shift, chrom_lengths=chrom_lengths
        )
        fragment_length = cross_correlation.fragment_length
    else:
        fragment_length = int(config.fragment_length)
    logger.info("Fragment length: %d bp; depth threshold: %d", fragment_length, config.threshold)

    jobs = _group_reads(reads)
    if config.jobs > 1 and len(jobs) > 1:
        done, skipped = _run_parallel(
            jobs,
            fragment_length=fragment_length,
            config=config,
            chrom_lengths=chrom_lengths,
            deadline=deadline,
            progress=progress,
        )
    else:
        done, skipped = _run_sequential(
            jobs,
            fragment_length=fragment_length,
            config=config,
            chrom_lengths=chrom_lengths,
            deadline=deadline,
            progress=progress,
        )

    if skipped:
        logger.warning(
            "Deadline of %.1fs reached; discarded %d unfinished chromosomes: %s",
            config.timeout,
            len(skipped),
            ", ".join(skipped),
        )

    chrom_order = [c for c in jobs if c in done]
    profiles = {c: done[c][0] for c in chrom_order}
    islands = {c: done[c][1] for c in chrom_order}
    all_islands = [isl for c in chrom_order for isl in islands[c]]

    peaks = summarize_islands(all_islands, profiles, top_n=config.top_n)
    logger.info("Called %d peaks on %d chromosomes", len(peaks), len(chrom_order))

    return PeakCallingResult(
        peaks=peaks,
        fragment_length=fragment_length,
        profiles=profiles,
        islands=islands,
        reads_per_chrom={c: len(v) for c, v in jobs.items()},
        skipped_chroms=skipped,
        cross_correlation=cross_correlation,
        runtime_seconds=time.time() - t0,
    )
