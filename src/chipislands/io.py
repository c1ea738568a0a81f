from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pysam
from tqdm import tqdm

from .models import PeakSummary, Read, Strand
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)


PEAK_COLUMNS = ["chromosome", "start", "end", "sum", "max", "max_position", "rank"]


def bam_chrom_lengths(bam_path: str | Path) -> Dict[str, int]:
    with pysam.AlignmentFile(str(bam_path), "rb") as bam:
        return dict(zip(bam.header.references, bam.header.lengths))


def read_from_segment(seg: pysam.AlignedSegment) -> Read:
    """Convert a pysam alignment (0-based half-open) to a 1-based closed Read."""
    return Read(
        chrom=str(seg.reference_name),
        start=int(seg.reference_start) + 1,
        strand=Strand.REVERSE if seg.is_reverse else Strand.FORWARD,
        length=int(seg.reference_end) - int(seg.reference_start),
    )


def load_reads_from_bam(
    bam_path: str | Path,
    *,
    chroms: Optional[Sequence[str]] = None,
    min_mapq: int = 0,
    skip_duplicates: bool = True,
    progress: bool = True,
) -> Tuple[List[Read], Dict[str, int]]:
    """Load mapped reads from a BAM.

    Unmapped, secondary, supplementary, QC-failed and (optionally) duplicate
    reads are skipped, as are reads below ``min_mapq``.

    Parameters
    ----------
    bam_path:
        Input BAM. Must be indexed when ``chroms`` is given.
    chroms:
        Restrict loading to these contigs.
    min_mapq:
        Minimum mapping quality.
    skip_duplicates:
        Skip reads flagged as PCR/optical duplicates.
    progress:
        Show a tqdm progress bar.

    Returns
    -------
    reads:
        Loaded reads in BAM order.
    counts:
        Simple counters about reads kept/skipped.
    """
    counts = {
        "reads_total": 0,
        "reads_kept": 0,
        "reads_unmapped": 0,
        "reads_skipped_secondary": 0,
        "reads_skipped_supplementary": 0,
        "reads_skipped_qcfail": 0,
        "reads_skipped_duplicates": 0,
        "reads_skipped_mapq": 0,
    }
    reads: List[Read] = []

    with pysam.AlignmentFile(str(bam_path), "rb") as bam:
        if chroms:
            missing = [c for c in chroms if c not in bam.references]
            if missing:
                raise ValueError(
                    f"Contigs not found in BAM header: {missing}. "
                    f"Available: {list(bam.references)[:10]}..."
                )
            it: Iterable[pysam.AlignedSegment] = (
                seg for c in chroms for seg in bam.fetch(c)
            )
        else:
            it = bam.fetch(until_eof=True)
        if progress:
            it = tqdm(it, unit="read", desc="Loading reads")

        for seg in it:
            counts["reads_total"] += 1
            if seg.is_unmapped or seg.reference_end is None:
                counts["reads_unmapped"] += 1
                continue
            if seg.is_secondary:
                counts["reads_skipped_secondary"] += 1
                continue
            if seg.is_supplementary:
                counts["reads_skipped_supplementary"] += 1
                continue
            if seg.is_qcfail:
                counts["reads_skipped_qcfail"] += 1
                continue
            if skip_duplicates and seg.is_duplicate:
                counts["reads_skipped_duplicates"] += 1
                continue
            if seg.mapping_quality < min_mapq:
                counts["reads_skipped_mapq"] += 1
                continue
            reads.append(read_from_segment(seg))

    counts["reads_kept"] = len(reads)
    logger.info("Loaded %d of %d reads from %s", len(reads), counts["reads_total"], bam_path)
    return reads, counts


def write_peaks_tsv(peaks: Iterable[PeakSummary], path: str | Path) -> Path:
    """Write peaks as a tab-separated table (1-based closed coordinates)."""
    path = Path(path)
    with open_textmaybe_gzip(path, "wt") as fh:
        fh.write("\t".join(PEAK_COLUMNS) + "\n")
        for p in peaks:
            fh.write(
                f"{p.chrom}\t{p.start}\t{p.end}\t{p.sum}\t{p.max}\t{p.max_position}\t{p.rank}\n"
            )
    return path


def write_peaks_bed(peaks: Iterable[PeakSummary], path: str | Path) -> Path:
    """Write peaks as BED6 (0-based half-open); name is ``peak_<rank>``, score is max depth."""
    path = Path(path)
    with open_textmaybe_gzip(path, "wt") as fh:
        for p in peaks:
            fh.write(f"{p.chrom}\t{p.start - 1}\t{p.end}\tpeak_{p.rank}\t{p.max}\t.\n")
    return path


def read_peaks_tsv(path: str | Path) -> List[PeakSummary]:
    peaks: List[PeakSummary] = []
    with open_textmaybe_gzip(path, "rt") as fh:
        header = fh.readline().rstrip("\n").split("\t")
        if header != PEAK_COLUMNS:
            raise ValueError(f"Unexpected peak table header in {path}: {header}")
        for line in fh:
            if not line.strip():
                continue
            chrom, start, end, total, peak, peak_pos, rank = line.rstrip("\n").split("\t")
            peaks.append(
                PeakSummary(
                    chrom=chrom,
                    start=int(start),
                    end=int(end),
                    sum=int(total),
                    max=int(peak),
                    max_position=int(peak_pos),
                    rank=int(rank),
                )
            )
    return peaks
