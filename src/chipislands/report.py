from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict, List

from jinja2 import Template

from .models import PeakSummary

logger = logging.getLogger(__name__)

_MAX_REPORT_PEAKS = 25


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>ChIPIslands Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    pre { padding: 12px; overflow-x: auto; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>ChIPIslands Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>BAM</th><td><code>{{ bam_path }}</code></td></tr>
      <tr><th>Contigs</th><td>{{ chroms }}</td></tr>
      <tr><th>Min MAPQ</th><td>{{ min_mapq }}</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Peak calling</h3>
    <table>
      <tr><th>Depth threshold (depth &gt; T)</th><td>{{ threshold }}</td></tr>
      <tr><th>Fragment length</th><td>{{ fragment_length }} bp{% if fragment_length_estimated %} (estimated){% endif %}</td></tr>
      <tr><th>Min island width</th><td>{{ min_width }}</td></tr>
    </table>
  </div>
</div>

<h2>Reads</h2>
<table>
  <tr><th>Total reads seen</th><td>{{ counts.reads_total }}</td></tr>
  <tr><th>Reads used</th><td>{{ counts.reads_kept }}</td></tr>
  <tr><th>Unmapped skipped</th><td>{{ counts.reads_unmapped }}</td></tr>
  <tr><th>Duplicates skipped</th><td>{{ counts.reads_skipped_duplicates }}</td></tr>
  <tr><th>Secondary skipped</th><td>{{ counts.reads_skipped_secondary }}</td></tr>
  <tr><th>Supplementary skipped</th><td>{{ counts.reads_skipped_supplementary }}</td></tr>
  <tr><th>Low MAPQ skipped</th><td>{{ counts.reads_skipped_mapq }}</td></tr>
</table>

<h2>Peaks</h2>
<table>
  <tr><th>Peaks called</th><td>{{ peak_stats.n_peaks }}</td></tr>
  <tr><th>Highest max depth</th><td>{{ peak_stats.max_depth }}</td></tr>
  <tr><th>Median width (bp)</th><td>{{ peak_stats.median_width }}</td></tr>
  <tr><th>Total bp in peaks</th><td>{{ peak_stats.total_bp }}</td></tr>
  {% if skipped_chroms %}
  <tr><th>Contigs dropped at deadline</th><td>{{ skipped_chroms | join(", ") }}</td></tr>
  {% endif %}
</table>

{% if top_peaks %}
<h3>Top {{ top_peaks | length }} peaks</h3>
<table>
  <tr><th>Rank</th><th>Contig</th><th>Start</th><th>End</th><th>Sum</th><th>Max</th><th>Max at</th></tr>
  {% for p in top_peaks %}
  <tr><td>{{ p.rank }}</td><td>{{ p.chrom }}</td><td>{{ p.start }}</td><td>{{ p.end }}</td><td>{{ p.sum }}</td><td>{{ p.max }}</td><td>{{ p.max_position }}</td></tr>
  {% endfor %}
</table>
{% endif %}

<h2>Plots</h2>

<div class="grid">
  <div class="card">
    <h3>Peak heights</h3>
    <img src="{{ plots.peak_max_hist }}" alt="peak max depth histogram">
  </div>
  <div class="card">
    <h3>Peak widths</h3>
    <img src="{{ plots.peak_width_hist }}" alt="peak width histogram">
  </div>
</div>

<div class="grid" style="margin-top:16px;">
  {% if plots.cross_correlation %}
  <div class="card">
    <h3>Strand cross-correlation</h3>
    <img src="{{ plots.cross_correlation }}" alt="cross-correlation">
  </div>
  {% endif %}
  {% if plots.top_peak %}
  <div class="card">
    <h3>Top peak coverage</h3>
    <img src="{{ plots.top_peak }}" alt="top peak coverage">
  </div>
  {% endif %}
</div>

<h2>Outputs</h2>
<ul>
  <li><code>{{ peaks_tsv }}</code> (ranked peaks, 1-based closed coordinates)</li>
  <li><code>{{ peaks_bed }}</code> (BED6, 0-based half-open)</li>
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<h2>Interpretation notes</h2>
<ul>
  <li>A peak is a maximal region whose fragment coverage is strictly above the threshold.</li>
  <li>Peaks are ranked by max depth, then summed depth, then position; no FDR is estimated.</li>
  <li>The threshold is dataset-specific; inspect the top peak plot before trusting a cutoff.</li>
</ul>

<hr>
<p class="small">ChIPIslands {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    counts: Dict[str, Any],
    peaks: List[PeakSummary],
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    plots = dict(plots)
    plots.setdefault("cross_correlation", "")
    plots.setdefault("top_peak", "")

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        bam_path=run.get("bam_path"),
        chroms=", ".join(run.get("chroms") or []) or "all",
        min_mapq=run.get("min_mapq"),
        threshold=run.get("threshold"),
        fragment_length=run.get("fragment_length"),
        fragment_length_estimated=run.get("fragment_length_estimate") is not None,
        min_width=run.get("min_width"),
        skipped_chroms=run.get("skipped_chroms", []),
        peaks_tsv=run.get("peaks_tsv"),
        peaks_bed=run.get("peaks_bed"),
        counts=counts,
        peak_stats=run.get("peaks", {}),
        top_peaks=peaks[:_MAX_REPORT_PEAKS],
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    return out_path
