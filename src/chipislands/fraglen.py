"""Fragment length estimation by strand cross-correlation.

Reads from one DNA fragment pile up on the forward strand at the fragment's
left end and on the reverse strand at its right end. Shifting the reverse-strand
5' end track left against the forward-strand track, the correlation between the
two peaks when the shift equals ``fragment_length - 1``.

Each strand is reduced to a binary track of distinct 5' end positions and the
normalized cross-correlation (NCC) is computed under a binomial variance model,
summed over chromosomes before normalization. A second, smaller peak appears at
the read length ("phantom peak"); if the raw estimate lands near it, that
region is masked and the estimate is re-taken.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np

from .errors import FragmentLengthEstimationError, InvalidParameterError
from .models import Read, Strand

logger = logging.getLogger(__name__)

_DEFAULT_MAX_SHIFT = 500
_DEFAULT_SMOOTH_WINDOW = 15
_DEFAULT_MASK_LEN = 5


@dataclass(frozen=True)
class CrossCorrelation:
    """Genome-wide strand cross-correlation and the fragment length it implies.

    ``coefficients[i]`` is the NCC at a shift of ``i`` bp, i.e. for a candidate
    fragment length of ``i + 1``.
    """

    coefficients: List[float]
    smoothed: List[float]
    fragment_length: int
    read_length: int
    forward_reads: int
    reverse_reads: int

    @property
    def max_shift(self) -> int:
        return len(self.coefficients) - 1

    def as_dict(self) -> Dict[str, object]:
        return {
            "fragment_length": self.fragment_length,
            "read_length": self.read_length,
            "forward_reads": self.forward_reads,
            "reverse_reads": self.reverse_reads,
            "max_shift": self.max_shift,
        }


def moving_average(arr: np.ndarray, window: int) -> np.ndarray:
    """Moving average of the same length as ``arr``; edges use partial windows."""
    if window <= 1 or arr.size < window:
        return arr.astype(np.float64)
    f = np.repeat(1.0, window) / float(window)
    avr = np.correlate(arr, f, mode="same")
    h_w = window // 2
    for i in range(h_w):
        avr[i] = np.average(arr[0 : h_w + i])
        avr[-(i + 1)] = np.average(arr[-(h_w + i) :])
    return avr


def _five_prime_ends(reads: Iterable[Read]) -> Dict[str, Dict[Strand, List[int]]]:
    ends: Dict[str, Dict[Strand, List[int]]] = {}
    for r in reads:
        by_strand = ends.setdefault(r.chrom, {Strand.FORWARD: [], Strand.REVERSE: []})
        by_strand[r.strand].append(r.start if r.strand is Strand.FORWARD else r.end)
    return ends


def strand_shift_counts(forward: np.ndarray, reverse: np.ndarray, max_shift: int) -> np.ndarray:
    """For each shift d in 0..max_shift, count forward ends f with a reverse end at f + d.

    Both inputs must be sorted arrays of distinct positions.
    """
    counts = np.zeros(max_shift + 1, dtype=np.int64)
    if forward.size == 0 or reverse.size == 0:
        return counts
    last = reverse.size - 1
    for d in range(max_shift + 1):
        targets = forward + d
        idx = np.searchsorted(reverse, targets)
        hit = reverse[np.minimum(idx, last)] == targets
        counts[d] = int(np.count_nonzero(hit))
    return counts


def normalized_cross_correlation(
    ccbins: np.ndarray,
    forward_sum: int,
    reverse_sum: int,
    genome_len: int,
) -> np.ndarray:
    """NCC under a binomial model for binary 5' end tracks."""
    max_shift = ccbins.size - 1
    denom = genome_len - np.arange(max_shift + 1, dtype=np.float64)
    forward_mean = forward_sum / float(genome_len)
    reverse_mean = reverse_sum / float(genome_len)
    forward_var = forward_mean * (1 - forward_mean)
    reverse_var = reverse_mean * (1 - reverse_mean)
    var_geomean = (forward_var * reverse_var) ** 0.5
    if var_geomean <= 0:
        raise FragmentLengthEstimationError(
            "Read ends saturate the genome span; cross-correlation is undefined."
        )
    return (ccbins / denom - forward_mean * reverse_mean) / var_geomean


def _pick_fragment_length(smoothed: np.ndarray, read_length: int, mask_len: int) -> int:
    candidates = smoothed.copy()
    # Shift 0 (fragment length 1) is not a meaningful candidate.
    candidates[0] = -np.inf
    est = int(np.argmax(candidates)) + 1

    if mask_len and abs(est - read_length) <= mask_len:
        logger.warning(
            "Estimated fragment length (%d) is close to the read length (%d); "
            "masking read length +/- %d bp.",
            est,
            read_length,
            mask_len,
        )
        mask_from = max(1, read_length - 1 - mask_len)
        mask_to = min(candidates.size, read_length + mask_len)
        candidates[mask_from:mask_to] = -np.inf
        if np.all(np.isneginf(candidates)):
            raise FragmentLengthEstimationError(
                "No cross-correlation left after masking the read length; increase max_shift."
            )
        est = int(np.argmax(candidates)) + 1
    return est


def estimate_fragment_length(
    reads: Iterable[Read],
    *,
    max_shift: int = _DEFAULT_MAX_SHIFT,
    chrom_lengths: Optional[Mapping[str, int]] = None,
    smooth_window: int = _DEFAULT_SMOOTH_WINDOW,
    mask_len: int = _DEFAULT_MASK_LEN,
) -> CrossCorrelation:
    """Estimate the fragment length from strand cross-correlation.

    Parameters
    ----------
    reads:
        Aligned reads (any order, any chromosomes).
    max_shift:
        Largest strand shift to evaluate; the estimate is at most ``max_shift + 1``.
    chrom_lengths:
        Reference lengths used as the correlation background. Chromosomes
        without a length use their observed span plus ``max_shift``.
    smooth_window:
        Moving-average window applied before picking the maximum.
    mask_len:
        Half-width of the region around the read length masked when the raw
        estimate falls on the phantom peak (0 disables masking).
    """
    if max_shift < 1:
        raise InvalidParameterError(f"max_shift must be >= 1, got {max_shift}")

    reads = list(reads)
    read_length = int(round(float(np.median([r.length for r in reads])))) if reads else 0
    ends = _five_prime_ends(reads)

    ccbins = np.zeros(max_shift + 1, dtype=np.int64)
    forward_sum = reverse_sum = genome_len = 0

    for chrom in sorted(ends):
        fwd = np.unique(np.asarray(ends[chrom][Strand.FORWARD], dtype=np.int64))
        rev = np.unique(np.asarray(ends[chrom][Strand.REVERSE], dtype=np.int64))
        if fwd.size == 0 or rev.size == 0:
            logger.info("Skipping %s for cross-correlation: reads on one strand only", chrom)
            continue

        if chrom_lengths is not None and chrom in chrom_lengths:
            chrom_len = int(chrom_lengths[chrom])
        else:
            chrom_len = int(max(fwd[-1], rev[-1]) - min(fwd[0], rev[0]) + 1) + max_shift

        ccbins += strand_shift_counts(fwd, rev, max_shift)
        forward_sum += int(fwd.size)
        reverse_sum += int(rev.size)
        genome_len += chrom_len
        logger.debug("Cross-correlation %s: %d forward, %d reverse ends", chrom, fwd.size, rev.size)

    if forward_sum == 0 or reverse_sum == 0 or ccbins.sum() == 0:
        raise FragmentLengthEstimationError(
            "Cannot estimate fragment length: need reads on both strands of at least one "
            "chromosome within max_shift of each other. Provide --fragment-length instead."
        )

    cc = normalized_cross_correlation(ccbins, forward_sum, reverse_sum, genome_len)
    smoothed = moving_average(cc, smooth_window)
    fragment_length = _pick_fragment_length(smoothed, read_length, mask_len)

    if fragment_length >= max_shift:
        logger.warning(
            "Estimated fragment length (%d) is at the edge of the shift range; "
            "consider increasing max_shift.",
            fragment_length,
        )
    logger.info("Estimated fragment length: %d (read length %d)", fragment_length, read_length)

    return CrossCorrelation(
        coefficients=[float(x) for x in cc],
        smoothed=[float(x) for x in smoothed],
        fragment_length=fragment_length,
        read_length=read_length,
        forward_reads=forward_sum,
        reverse_reads=reverse_sum,
    )
