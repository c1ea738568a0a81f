from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List

import pysam

from .utils import ensure_outdir, write_json

TOY_CONTIG = "chr1"
TOY_CONTIG_LENGTH = 5000
TOY_SITES = (1500, 3500)  # 1-based binding-site centers
TOY_FRAGMENT_LENGTH = 150
TOY_READ_LENGTH = 36

# Background reads are kept away from the sites so the enriched coverage stays unimodal.
_BACKGROUND_WINDOWS = ((1, 1000), (2200, 2800), (4300, 4800))


def _make_read(
    name: str,
    start0: int,
    seq: str,
    *,
    reverse: bool,
    mapq: int = 60,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = 16 if reverse else 0
    a.reference_id = 0
    a.reference_start = start0
    a.mapping_quality = mapq
    a.cigartuples = [(0, len(seq))]
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    return a


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a tiny single-contig ChIP-seq BAM suitable for quick demos/tests.

    Two binding sites (``TOY_SITES``) are each covered by 41 fragments of
    ``TOY_FRAGMENT_LENGTH`` bp whose starts are spaced 5 bp apart; alternate
    fragments yield a forward read at the fragment start or a reverse read at
    the fragment end. A sparse background of single reads lies well away from
    the sites.

    The outputs include:
    - chip.bam (+ .bai)
    - toy_summary.json

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)
    rng = random.Random(7)
    ref_seq = "".join(rng.choice("ACGT") for _ in range(TOY_CONTIG_LENGTH))

    reads: List[pysam.AlignedSegment] = []
    for site_i, center in enumerate(TOY_SITES):
        for i in range(41):
            frag_start = center - 100 + 5 * i
            frag_end = frag_start + TOY_FRAGMENT_LENGTH - 1
            if i % 2 == 0:
                start1 = frag_start
                reverse = False
            else:
                start1 = frag_end - TOY_READ_LENGTH + 1
                reverse = True
            seq = ref_seq[start1 - 1 : start1 - 1 + TOY_READ_LENGTH]
            reads.append(_make_read(f"site{site_i}_{i}", start1 - 1, seq, reverse=reverse))

    n_bg = 0
    for lo, hi in _BACKGROUND_WINDOWS:
        for start1 in range(lo, hi - TOY_READ_LENGTH, 97):
            seq = ref_seq[start1 - 1 : start1 - 1 + TOY_READ_LENGTH]
            reads.append(_make_read(f"bg_{n_bg}", start1 - 1, seq, reverse=n_bg % 2 == 1))
            n_bg += 1

    reads.sort(key=lambda r: r.reference_start)

    bam_path = outdir_p / "chip.bam"
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": TOY_CONTIG, "LN": TOY_CONTIG_LENGTH}],
    }
    with pysam.AlignmentFile(str(bam_path), "wb", header=header) as bam:
        for r in reads:
            bam.write(r)

    pysam.index(str(bam_path))

    summary = {
        "chip_bam": str(bam_path),
        "contig": TOY_CONTIG,
        "sites": ",".join(str(s) for s in TOY_SITES),
        "fragment_length": str(TOY_FRAGMENT_LENGTH),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
