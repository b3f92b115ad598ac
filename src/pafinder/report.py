from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>pafinder Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
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

<h1>pafinder Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Files</h3>
    <table>
      <tr><th>Input</th><td><code>{{ input_path }}</code></td></tr>
      <tr><th>Output</th><td><code>{{ output_path }}</code></td></tr>
      <tr><th>Populations</th><td>{{ num_pops }}</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Thresholds</h3>
    <table>
      <tr><th>Minimum Nc</th><td>{{ min_nc }}</td></tr>
      <tr><th>Polymorphism critical value</th><td>{{ cv }}</td></tr>
      <tr><th>Missing token</th><td><code>{{ missing_token }}</code></td></tr>
    </table>
  </div>
</div>

<h2>Sites</h2>
<table>
  <tr><th>Data lines read</th><td>{{ counts.lines_total }}</td></tr>
  <tr><th>Blank lines</th><td>{{ counts.lines_blank }}</td></tr>
  <tr><th>Malformed lines skipped</th><td>{{ counts.lines_skipped_malformed }}</td></tr>
  <tr><th>Sites analyzed</th><td>{{ counts.sites_analyzed }}</td></tr>
  <tr><th>No eligible population</th><td>{{ counts.sites_no_eligible_pops }}</td></tr>
  <tr><th>One eligible population</th><td>{{ counts.sites_single_eligible_pop }}</td></tr>
  <tr><th>Polymorphic sites</th><td>{{ counts.sites_polymorphic }}</td></tr>
  <tr><th>Sites with private alleles</th><td>{{ counts.sites_with_private_alleles }}</td></tr>
  <tr><th>Private alleles</th><td>{{ counts.private_alleles_total }}</td></tr>
  <tr><th>log10 probability = -inf</th><td>{{ counts.log_prob_neg_inf }}</td></tr>
</table>

<h2>Private alleles per population</h2>
<table>
  <tr><th>Population id</th><th>Private alleles</th></tr>
  {% for n in per_pop %}
  <tr><td>{{ loop.index }}</td><td>{{ n }}</td></tr>
  {% endfor %}
</table>

<h2>Plots</h2>
<div class="grid">
  <div class="card">
    <h3>Per population</h3>
    <img src="{{ plots.per_pop }}" alt="private alleles per population">
  </div>
  <div class="card">
    <h3>Occurrence probability</h3>
    <img src="{{ plots.log_prob_hist }}" alt="log probability histogram">
  </div>
</div>

<h2>Interpretation notes</h2>
<ul>
  <li>Only populations with ML estimates and Nc &ge; {{ min_nc }} are considered at a site.</li>
  <li>A secondary allele counts only when the polymorphism statistic exceeds {{ cv }}.</li>
  <li>Total frequency is the mean over all eligible populations, counting absent alleles as zero.</li>
  <li>No correction for multiple testing is applied.</li>
</ul>

<hr>
<p class="small">pafinder {{ version }} &middot; runtime {{ "%.1f"|format(runtime_seconds) }} s</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        input_path=run.get("input_path"),
        output_path=run.get("output_path"),
        num_pops=run.get("num_pops"),
        min_nc=run.get("min_nc"),
        cv=run.get("cv"),
        missing_token=run.get("missing_token"),
        counts=run.get("counts", {}),
        per_pop=run.get("private_alleles_per_pop", []),
        runtime_seconds=float(run.get("runtime_seconds", 0.0)),
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    logger.info("Report written: %s", out_path)
    return out_path
