from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .fraglen import estimate_fragment_length
from .io import bam_chrom_lengths, load_reads_from_bam, write_peaks_bed, write_peaks_tsv
from .pipeline import PeakCallingConfig, call_peaks
from .plotting import (
    plot_cross_correlation,
    plot_peak_max_hist,
    plot_peak_width_hist,
    plot_top_peak_coverage,
)
from .report import render_report
from .toy_data import make_toy_data
from .utils import ensure_outdir, write_json
from .validation import check_bam_index


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    msg = f"{err.__class__.__name__}: {err}"
    sys.stderr.write(msg + "\n")
    if log_path is not None and log_path.exists():
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _add_read_filter_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--bam", required=True, type=_path_exists, help="Input BAM (sorted, indexed).")
    p.add_argument(
        "--chrom",
        nargs="+",
        default=None,
        help="Restrict to these contigs (default: all contigs in the BAM).",
    )
    p.add_argument("--min-mapq", type=int, default=0, help="Minimum mapping quality.")
    p.add_argument("--keep-duplicates", action="store_true", help="Do not skip duplicate reads.")
    p.add_argument("--no-progress", action="store_true", help="Disable progress bars.")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="chipislands",
        description=(
            "ChIPIslands: call ChIP-seq peaks as coverage islands. Reads are extended to the "
            "fragment length, stacked into coverage, and regions above a depth threshold are "
            "reported and ranked."
        ),
    )
    p.add_argument("--version", action="version", version=f"chipislands {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny ChIP-seq BAM with two known binding sites.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # fraglen
    # -----------------
    f = sub.add_parser(
        "fraglen",
        help="Estimate the fragment length by strand cross-correlation.",
    )
    _add_read_filter_args(f)
    f.add_argument(
        "--max-shift",
        type=int,
        default=500,
        help="Largest strand shift to evaluate (bp).",
    )
    f.add_argument("--plot", default=None, help="Optional PNG path for the cross-correlation curve.")

    # -----------------
    # call
    # -----------------
    c = sub.add_parser(
        "call",
        help="Call peaks: extend reads, build coverage, report islands above a depth threshold.",
    )
    _add_read_filter_args(c)
    c.add_argument("--outdir", required=True, help="Output directory.")
    c.add_argument(
        "--threshold",
        type=int,
        required=True,
        help="Depth threshold; a peak is a region with depth strictly greater than this.",
    )
    c.add_argument(
        "--fragment-length",
        default="auto",
        help="Fragment length in bp, or 'auto' to estimate it by strand cross-correlation.",
    )
    c.add_argument(
        "--max-shift",
        type=int,
        default=500,
        help="Largest strand shift evaluated when --fragment-length auto.",
    )
    c.add_argument("--min-width", type=int, default=1, help="Drop peaks narrower than this (bp).")
    c.add_argument("--top-n", type=int, default=None, help="Report only the N best-ranked peaks.")
    c.add_argument("--jobs", type=int, default=1, help="Worker processes (one contig per task).")
    c.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Deadline in seconds; contigs not finished by then are dropped.",
    )
    c.add_argument(
        "--strict",
        action="store_true",
        help="Fail instead of warning when no reads pass the filters.",
    )
    c.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    c.add_argument("--resume", action="store_true", help="Skip if outputs already exist.")

    return p


# -----------------
# Commands
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "ChIPIslands quickstart (copy/paste):",
        "",
        "1) Call peaks with an estimated fragment length:",
        "   chipislands call \\",
        "     --bam chip.bam \\",
        "     --threshold 50 \\",
        "     --outdir results/",
        "   Outputs: results/report.html, results/peaks.tsv.gz, results/peaks.bed, results/summary.json",
        "",
        "2) Call peaks with a known fragment length on selected contigs:",
        "   chipislands call \\",
        "     --bam chip.bam \\",
        "     --threshold 50 \\",
        "     --fragment-length 180 \\",
        "     --chrom chr1 chr2 \\",
        "     --jobs 2 \\",
        "     --outdir results_chr12/",
        "",
        "3) Only estimate the fragment length:",
        "   chipislands fraglen --bam chip.bam --plot fraglen.png",
        "",
        "Tip: use --dry-run to validate inputs and print the planned outputs.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def cmd_fraglen(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)

    try:
        if args.chrom:
            check_bam_index(args.bam)
        reads, _ = load_reads_from_bam(
            args.bam,
            chroms=args.chrom,
            min_mapq=int(args.min_mapq),
            skip_duplicates=not bool(args.keep_duplicates),
            progress=not bool(args.no_progress),
        )
        cc = estimate_fragment_length(
            reads,
            max_shift=int(args.max_shift),
            chrom_lengths=bam_chrom_lengths(args.bam),
        )
        if args.plot:
            plot_cross_correlation(cc=cc, out_png=args.plot)
        print(json.dumps(cc.as_dict(), indent=2, sort_keys=True))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=None)


def cmd_call(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "call.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("chipislands")
    logger.info("chipislands %s", __version__)

    try:
        config = PeakCallingConfig(
            threshold=int(args.threshold),
            fragment_length=args.fragment_length,
            min_width=int(args.min_width),
            jobs=int(args.jobs),
            timeout=args.timeout,
            max_shift=int(args.max_shift),
            top_n=args.top_n,
            strict=bool(args.strict),
        ).validate()

        check_bam_index(args.bam)
        chrom_lengths = bam_chrom_lengths(args.bam)

        peaks_tsv = outdir / "peaks.tsv.gz"
        peaks_bed = outdir / "peaks.bed"

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Contigs in BAM: {len(chrom_lengths)}")
            print(f"Depth threshold: {config.threshold}")
            print(f"Fragment length: {config.fragment_length}")
            print("Planned outputs:")
            print(f"  report.html -> {outdir / 'report.html'}")
            print(f"  peaks.tsv.gz -> {peaks_tsv}")
            print(f"  peaks.bed -> {peaks_bed}")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            return 0

        outdir = ensure_outdir(outdir)

        if args.resume and (outdir / "summary.json").exists():
            logger.info("Resume enabled: summary.json already exists in %s", outdir)
            print(str(outdir / "report.html"))
            return 0

        reads, counts = load_reads_from_bam(
            args.bam,
            chroms=args.chrom,
            min_mapq=int(args.min_mapq),
            skip_duplicates=not bool(args.keep_duplicates),
            progress=not bool(args.no_progress),
        )

        result = call_peaks(
            reads,
            config,
            chrom_lengths=chrom_lengths,
            progress=not bool(args.no_progress),
        )

        write_peaks_tsv(result.peaks, peaks_tsv)
        write_peaks_bed(result.peaks, peaks_bed)

        run = dict(result.as_dict())
        run.update(
            {
                "bam_path": args.bam,
                "chroms": args.chrom,
                "min_mapq": int(args.min_mapq),
                "skip_duplicates": not bool(args.keep_duplicates),
                "threshold": config.threshold,
                "min_width": config.min_width,
                "top_n": config.top_n,
                "peaks_tsv": str(peaks_tsv),
                "peaks_bed": str(peaks_bed),
                "counts": counts,
            }
        )
        write_json(outdir / "summary.json", run)

        plots_dir = outdir / "plots"
        plots_dir.mkdir(parents=True, exist_ok=True)

        max_png = plots_dir / "peak_max_hist.png"
        width_png = plots_dir / "peak_width_hist.png"
        plot_peak_max_hist(peaks=result.peaks, out_png=max_png)
        plot_peak_width_hist(peaks=result.peaks, out_png=width_png)

        plots_rel = {
            "peak_max_hist": str(Path("plots") / max_png.name),
            "peak_width_hist": str(Path("plots") / width_png.name),
        }

        if result.cross_correlation is not None:
            cc_png = plots_dir / "cross_correlation.png"
            plot_cross_correlation(cc=result.cross_correlation, out_png=cc_png)
            plots_rel["cross_correlation"] = str(Path("plots") / cc_png.name)

        if result.peaks:
            top = result.peaks[0]
            top_png = plots_dir / "top_peak.png"
            plot_top_peak_coverage(
                peak=top,
                profile=result.profiles[top.chrom],
                threshold=config.threshold,
                out_png=top_png,
            )
            plots_rel["top_peak"] = str(Path("plots") / top_png.name)

        report_path = render_report(
            outdir=outdir,
            version=__version__,
            run=run,
            counts=counts,
            peaks=result.peaks,
            plots=plots_rel,
        )

        logger.info("Report written: %s", report_path)
        print(str(report_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "fraglen":
        return cmd_fraglen(args)
    if args.cmd == "call":
        return cmd_call(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
