import random

import pytest

from chipislands.coverage import build_coverage, build_coverage_by_chrom
from chipislands.errors import InvalidParameterError
from chipislands.fragments import extend_read, extend_reads
from chipislands.islands import detect_islands
from chipislands.models import CoverageProfile, ExtendedInterval, Island, Read, Strand
from chipislands.summarize import island_metrics, summarize_islands


def fwd(pos: int, length: int = 5, chrom: str = "chr1") -> Read:
    return Read(chrom=chrom, start=pos, strand=Strand.FORWARD, length=length)


def rev(pos: int, length: int = 5, chrom: str = "chr1") -> Read:
    return Read(chrom=chrom, start=pos, strand=Strand.REVERSE, length=length)


def iv(start: int, end: int, chrom: str = "chr1") -> ExtendedInterval:
    return ExtendedInterval(chrom=chrom, start=start, end=end, strand=Strand.FORWARD)


def naive_depth(intervals, pos: int) -> int:
    return sum(1 for x in intervals if x.start <= pos <= x.end)


def random_intervals(rng: random.Random, n: int, span: int = 400, max_len: int = 60):
    out = []
    for _ in range(n):
        start = rng.randint(1, span)
        out.append(iv(start, start + rng.randint(0, max_len)))
    return out


def test_extend_forward_and_reverse():
    assert extend_read(fwd(100, 20), 50) == ExtendedInterval("chr1", 100, 149, Strand.FORWARD)
    # reverse read covers 100..119; its 5' end is 119
    assert extend_read(rev(100, 20), 50) == ExtendedInterval("chr1", 70, 119, Strand.REVERSE)


def test_extend_reverse_clipped_at_chromosome_start():
    ext = extend_read(rev(10, 20), 50)
    assert ext.start == 1
    assert ext.end == 29


@pytest.mark.parametrize("bad", [0, -5])
def test_extend_rejects_non_positive_fragment_length(bad):
    with pytest.raises(InvalidParameterError):
        extend_reads([fwd(10)], bad)


def test_extend_rejects_non_positive_fragment_length_even_without_reads():
    with pytest.raises(InvalidParameterError):
        extend_reads([], 0)


@pytest.mark.parametrize("bad", [0, -5])
def test_extend_read_rejects_non_positive_fragment_length(bad):
    with pytest.raises(InvalidParameterError):
        extend_read(fwd(100, 20), bad)
    with pytest.raises(InvalidParameterError):
        extend_read(rev(100, 20), bad)


def test_models_reject_impossible_coordinates():
    with pytest.raises(InvalidParameterError):
        fwd(100, 0)
    with pytest.raises(InvalidParameterError):
        iv(20, 19)
    assert iv(20, 20).start == 20


def test_strand_parse():
    assert Strand.parse("+") is Strand.FORWARD
    assert Strand.parse("-") is Strand.REVERSE
    with pytest.raises(ValueError):
        Strand.parse(".")


def test_extend_keeps_input_order():
    reads = [fwd(50), rev(10), fwd(30)]
    out = extend_reads(reads, 10)
    assert [x.strand for x in out] == [Strand.FORWARD, Strand.REVERSE, Strand.FORWARD]
    assert [x.end for x in out] == [59, 14, 39]


def test_worked_example_coverage():
    intervals = extend_reads([fwd(10), fwd(12), fwd(15)], 10)
    assert [(x.start, x.end) for x in intervals] == [(10, 19), (12, 21), (15, 24)]

    profile = build_coverage(intervals)
    assert profile.chrom == "chr1"
    assert profile.span == (10, 24)
    assert list(profile.iter_runs()) == [
        (10, 11, 1),
        (12, 14, 2),
        (15, 19, 3),
        (20, 21, 2),
        (22, 24, 1),
    ]


def test_worked_example_islands_and_summary():
    profile = build_coverage(extend_reads([fwd(10), fwd(12), fwd(15)], 10))

    islands = detect_islands(profile, 0)
    assert islands == [Island("chr1", 10, 24)]
    assert island_metrics(islands[0], profile) == (30, 3, 15)

    # depth must be strictly greater than the threshold
    islands = detect_islands(profile, 1)
    assert islands == [Island("chr1", 12, 21)]
    peaks = summarize_islands(islands, profile)
    assert len(peaks) == 1
    p = peaks[0]
    assert (p.start, p.end, p.sum, p.max, p.max_position, p.rank) == (12, 21, 25, 3, 15, 1)


def test_empty_input_gives_empty_everything():
    profile = build_coverage([], chrom="chr1")
    assert profile.is_empty
    assert profile.total_positions == 0
    assert profile.depth_at(10) == 0
    islands = detect_islands(profile, 0)
    assert islands == []
    assert summarize_islands(islands, profile) == []


def test_threshold_above_max_depth_gives_no_islands():
    profile = build_coverage(extend_reads([fwd(10), fwd(12), fwd(15)], 10))
    assert detect_islands(profile, 3) == []
    assert detect_islands(profile, 100) == []


def test_negative_threshold_rejected():
    profile = build_coverage([iv(1, 5)])
    with pytest.raises(InvalidParameterError):
        detect_islands(profile, -1)


def test_abutting_intervals_form_one_run():
    profile = build_coverage([iv(1, 5), iv(6, 10)])
    assert list(profile.iter_runs()) == [(1, 10, 1)]


def test_gap_between_intervals_is_zero_depth():
    profile = build_coverage([iv(1, 5), iv(10, 12)])
    assert list(profile.iter_runs()) == [(1, 5, 1), (6, 9, 0), (10, 12, 1)]
    assert detect_islands(profile, 0) == [Island("chr1", 1, 5), Island("chr1", 10, 12)]


def test_coverage_stacks_without_cap():
    profile = build_coverage([iv(5, 5)] * 1000)
    assert list(profile.iter_runs()) == [(5, 5, 1000)]


def test_coverage_rejects_mixed_chromosomes():
    with pytest.raises(InvalidParameterError):
        build_coverage([iv(1, 5, chrom="chr1"), iv(1, 5, chrom="chr2")])


def test_coverage_by_chrom_unions_interval_sets():
    set_a = [iv(1, 10), iv(100, 110, chrom="chr2")]
    set_b = [iv(5, 15)]
    profiles = build_coverage_by_chrom(set_a + set_b)
    assert sorted(profiles) == ["chr1", "chr2"]
    assert list(profiles["chr1"].iter_runs()) == [(1, 4, 1), (5, 10, 2), (11, 15, 1)]
    # calling on the union finds the overlap; neither set alone reaches depth 2
    assert detect_islands(profiles["chr1"], 1) == [Island("chr1", 5, 10)]


def test_coverage_matches_naive_count():
    rng = random.Random(11)
    for _ in range(20):
        intervals = random_intervals(rng, rng.randint(1, 40))
        profile = build_coverage(intervals)
        lo, hi = profile.span
        assert lo == min(x.start for x in intervals)
        assert hi == max(x.end for x in intervals)
        for pos in range(lo - 2, hi + 3):
            assert profile.depth_at(pos) == naive_depth(intervals, pos)
        vals = profile.values(lo, hi)
        assert list(vals) == [naive_depth(intervals, p) for p in range(lo, hi + 1)]
        runs = list(profile.iter_runs())
        assert all(d >= 0 for _, _, d in runs)
        assert all(a[2] != b[2] for a, b in zip(runs, runs[1:]))


def test_island_bounds_and_order_properties():
    rng = random.Random(5)
    for _ in range(20):
        intervals = random_intervals(rng, rng.randint(1, 60))
        profile = build_coverage(intervals)
        lo, hi = profile.span
        for threshold in range(0, 6):
            islands = detect_islands(profile, threshold)
            for isl in islands:
                assert all(profile.depth_at(p) > threshold for p in range(isl.start, isl.end + 1))
                if isl.start - 1 >= lo:
                    assert profile.depth_at(isl.start - 1) <= threshold
                if isl.end + 1 <= hi:
                    assert profile.depth_at(isl.end + 1) <= threshold
            for a, b in zip(islands, islands[1:]):
                assert a.end < b.start
            # every position above threshold is in some island
            above = [p for p in range(lo, hi + 1) if profile.depth_at(p) > threshold]
            covered = {p for isl in islands for p in range(isl.start, isl.end + 1)}
            assert set(above) == covered


def test_raising_threshold_only_shrinks_islands():
    rng = random.Random(3)
    for _ in range(20):
        profile = build_coverage(random_intervals(rng, rng.randint(5, 60)))
        for threshold in range(0, 5):
            lower = detect_islands(profile, threshold)
            higher = detect_islands(profile, threshold + 1)
            for isl in higher:
                assert any(o.start <= isl.start and isl.end <= o.end for o in lower)


def test_min_width_filters_narrow_islands():
    profile = build_coverage([iv(1, 2), iv(10, 30)])
    assert detect_islands(profile, 0, min_width=5) == [Island("chr1", 10, 30)]
    with pytest.raises(InvalidParameterError):
        detect_islands(profile, 0, min_width=0)


def test_island_sum_is_exact():
    rng = random.Random(21)
    intervals = random_intervals(rng, 80)
    profile = build_coverage(intervals)
    for isl in detect_islands(profile, 2):
        total, peak, peak_pos = island_metrics(isl, profile)
        depths = [naive_depth(intervals, p) for p in range(isl.start, isl.end + 1)]
        assert total == sum(depths)
        assert peak == max(depths)
        assert peak_pos == isl.start + depths.index(peak)


def test_ranking_order_and_tie_breaks():
    # chr1: island A max 2 sum 10; island B max 3 sum 3
    # chr2: island C max 2 sum 10 (ties with A, later start); island D max 2 sum 12
    profiles = {
        "chr1": CoverageProfile("chr1", (1, 6, 10, 11), (5, 9, 10, 20), (2, 0, 3, 0)),
        "chr2": CoverageProfile("chr2", (3, 8, 20), (7, 19, 25), (2, 0, 2)),
    }
    islands = [
        Island("chr1", 1, 5),
        Island("chr1", 10, 10),
        Island("chr2", 3, 7),
        Island("chr2", 20, 25),
    ]
    peaks = summarize_islands(islands, profiles)
    assert [(p.chrom, p.start, p.rank) for p in peaks] == [
        ("chr1", 10, 1),
        ("chr2", 20, 2),
        ("chr1", 1, 3),
        ("chr2", 3, 4),
    ]
    assert peaks[1].sum == 12


def test_chromosome_filter_keeps_global_ranks():
    profile_a = build_coverage([iv(1, 10), iv(1, 10)], chrom="chr1")
    profile_b = build_coverage([iv(1, 10, chrom="chr2")] * 3, chrom="chr2")
    profiles = {"chr1": profile_a, "chr2": profile_b}
    islands = detect_islands(profile_a, 0) + detect_islands(profile_b, 0)

    only_chr1 = summarize_islands(islands, profiles, chromosome="chr1")
    assert [(p.chrom, p.rank) for p in only_chr1] == [("chr1", 2)]
    assert summarize_islands(islands, profiles, chromosome="chrX") == []


def test_top_n_limits_output():
    profile = build_coverage([iv(1, 5), iv(20, 30), iv(20, 30), iv(50, 60)])
    islands = detect_islands(profile, 0)
    peaks = summarize_islands(islands, profile, top_n=1)
    assert [(p.start, p.rank) for p in peaks] == [(20, 1)]
    with pytest.raises(InvalidParameterError):
        summarize_islands(islands, profile, top_n=0)


def test_summarize_is_idempotent_and_does_not_mutate():
    rng = random.Random(8)
    profile = build_coverage(random_intervals(rng, 50))
    islands = detect_islands(profile, 1)
    before = list(islands)
    first = summarize_islands(islands, profile)
    second = summarize_islands(islands, profile)
    assert first == second
    assert islands == before


def test_summarize_requires_matching_profile():
    profile = build_coverage([iv(1, 5)])
    with pytest.raises(InvalidParameterError):
        summarize_islands([Island("chr9", 1, 5)], profile)


def test_peak_summary_as_dict_fields():
    profile = build_coverage([iv(1, 5), iv(3, 4)])
    peak = summarize_islands(detect_islands(profile, 0), profile)[0]
    assert peak.as_dict() == {
        "chromosome": "chr1",
        "start": 1,
        "end": 5,
        "sum": 7,
        "max": 2,
        "max_position": 3,
        "rank": 1,
    }
