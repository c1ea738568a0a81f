from pathlib import Path

import pysam

from chipislands.io import (
    bam_chrom_lengths,
    load_reads_from_bam,
    read_from_segment,
    read_peaks_tsv,
    write_peaks_bed,
    write_peaks_tsv,
)
from chipislands.models import PeakSummary, Strand
from chipislands.pipeline import PeakCallingConfig, call_peaks
from chipislands.toy_data import TOY_CONTIG, TOY_CONTIG_LENGTH, TOY_FRAGMENT_LENGTH, make_toy_data


def make_segment(
    header: pysam.AlignmentHeader, start0: int, length: int, *, reverse: bool
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment(header)
    a.query_name = "r1"
    a.query_sequence = "A" * length
    a.flag = 16 if reverse else 0
    a.reference_id = 0
    a.reference_start = start0
    a.mapping_quality = 60
    a.cigartuples = [(0, length)]
    return a


def test_segment_to_read_uses_one_based_coordinates():
    header = pysam.AlignmentHeader.from_dict({"SQ": [{"SN": "chr1", "LN": 1000}]})
    seg = make_segment(header, 99, 36, reverse=True)
    read = read_from_segment(seg)
    assert read.chrom == "chr1"
    assert read.start == 100
    assert read.end == 135
    assert read.strand is Strand.REVERSE


def test_load_toy_bam(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    reads, counts = load_reads_from_bam(toy["chip_bam"], progress=False)
    assert counts["reads_total"] == len(reads) == counts["reads_kept"]
    assert {r.chrom for r in reads} == {TOY_CONTIG}
    assert any(r.strand is Strand.REVERSE for r in reads)
    assert bam_chrom_lengths(toy["chip_bam"]) == {TOY_CONTIG: TOY_CONTIG_LENGTH}


def test_load_filters_low_mapq_and_region(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    reads, counts = load_reads_from_bam(toy["chip_bam"], min_mapq=61, progress=False)
    assert reads == []
    assert counts["reads_skipped_mapq"] == counts["reads_total"]

    reads, _ = load_reads_from_bam(toy["chip_bam"], chroms=[TOY_CONTIG], progress=False)
    assert len(reads) > 0


def test_toy_bam_calls_both_sites(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    reads, _ = load_reads_from_bam(toy["chip_bam"], progress=False)
    result = call_peaks(
        reads,
        PeakCallingConfig(threshold=10, fragment_length=TOY_FRAGMENT_LENGTH),
        chrom_lengths={TOY_CONTIG: TOY_CONTIG_LENGTH},
    )
    assert len(result.peaks) == 2
    first, second = result.peaks
    assert first.max == second.max == 30
    assert first.sum == second.sum
    # equal peaks are ordered by position
    assert first.start < 2000 < second.start
    assert first.start <= 1500 <= first.end
    assert second.start <= 3500 <= second.end


def test_toy_bam_fragment_length_estimate(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    reads, _ = load_reads_from_bam(toy["chip_bam"], progress=False)
    result = call_peaks(
        reads,
        PeakCallingConfig(threshold=10, fragment_length="auto", max_shift=300),
        chrom_lengths={TOY_CONTIG: TOY_CONTIG_LENGTH},
    )
    assert abs(result.fragment_length - TOY_FRAGMENT_LENGTH) <= 20


def test_peak_tables(tmp_path: Path):
    peaks = [
        PeakSummary("chr1", 11, 20, 55, 7, 14, 1),
        PeakSummary("chr2", 1, 5, 10, 2, 1, 2),
    ]
    tsv = write_peaks_tsv(peaks, tmp_path / "peaks.tsv.gz")
    assert read_peaks_tsv(tsv) == peaks

    bed = write_peaks_bed(peaks, tmp_path / "peaks.bed")
    lines = bed.read_text(encoding="utf-8").splitlines()
    assert lines[0].split("\t") == ["chr1", "10", "20", "peak_1", "7", "."]
    assert lines[1].split("\t")[:3] == ["chr2", "0", "5"]
