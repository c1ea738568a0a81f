from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import matplotlib.pyplot as plt

from .fraglen import CrossCorrelation
from .models import CoverageProfile, PeakSummary

logger = logging.getLogger(__name__)


def plot_cross_correlation(
    *,
    cc: CrossCorrelation,
    out_png: str | Path,
    title: str = "Strand cross-correlation",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    # coefficients[i] is the shift i, i.e. fragment length i + 1
    lengths = list(range(1, len(cc.coefficients) + 1))

    plt.figure()
    plt.plot(lengths, cc.coefficients, color="0.7", label="NCC")
    plt.plot(lengths, cc.smoothed, color="C0", label="smoothed")
    plt.axvline(cc.fragment_length, color="C3", linestyle="--", label=f"fragment {cc.fragment_length} bp")
    if cc.read_length:
        plt.axvline(cc.read_length, color="0.4", linestyle=":", label=f"read {cc.read_length} bp")
    plt.xlabel("Fragment length (bp)")
    plt.ylabel("Cross-correlation")
    plt.title(title)
    plt.legend()
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_peak_max_hist(
    *,
    peaks: List[PeakSummary],
    out_png: str | Path,
    title: str = "Peak height distribution",
    nbins: int = 30,
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    plt.figure()
    if peaks:
        plt.hist([p.max for p in peaks], bins=nbins)
    plt.xlabel("Max depth in peak")
    plt.ylabel("Peak count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_peak_width_hist(
    *,
    peaks: List[PeakSummary],
    out_png: str | Path,
    title: str = "Peak width distribution",
    nbins: int = 30,
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    plt.figure()
    if peaks:
        plt.hist([p.width for p in peaks], bins=nbins)
    plt.xlabel("Peak width (bp)")
    plt.ylabel("Peak count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_top_peak_coverage(
    *,
    peak: PeakSummary,
    profile: CoverageProfile,
    threshold: int,
    out_png: str | Path,
    flank: int = 200,
    title: Optional[str] = None,
) -> None:
    """Coverage around one peak with the calling threshold drawn in."""
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    lo = max(1, peak.start - flank)
    hi = peak.end + flank
    depth = profile.values(lo, hi)

    plt.figure()
    plt.fill_between(range(lo, hi + 1), depth, step="mid", alpha=0.6)
    plt.axhline(threshold, color="C3", linestyle="--", label=f"threshold {threshold}")
    plt.axvline(peak.max_position, color="0.3", linestyle=":", label="max depth")
    plt.xlabel(f"{peak.chrom} position")
    plt.ylabel("Depth")
    plt.title(title or f"Rank {peak.rank}: {peak.chrom}:{peak.start}-{peak.end}")
    plt.legend()
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
