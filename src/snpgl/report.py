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
  <title>snpgl Report</title>
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

<h1>snpgl Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      {% for bam in bam_paths %}
      <tr><th>BAM</th><td><code>{{ bam }}</code></td></tr>
      {% endfor %}
      <tr><th>Reference</th><td><code>{{ ref_fasta }}</code></td></tr>
      <tr><th>Region</th><td><code>{{ region or "all contigs" }}</code></td></tr>
      <tr><th>Samples</th><td>{{ samples | join(", ") }}</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Model</h3>
    <table>
      <tr><th>Allele source</th><td>{{ config.allele_source }}</td></tr>
      <tr><th>Output mode</th><td>{{ config.output_mode }}</td></tr>
      <tr><th>PCR error rate</th><td>{{ config.pcr_error }}</td></tr>
      <tr><th>Min baseQ</th><td>{{ config.min_baseq }}</td></tr>
      <tr><th>Min MAPQ</th><td>{{ config.min_mapq }}</td></tr>
      <tr><th>Contamination fraction</th><td>{{ config.contamination }}</td></tr>
      <tr><th>BAQ from BQ tag</th><td>{{ config.use_baq }}</td></tr>
      <tr><th>Cap baseQ at MAPQ</th><td>{{ config.cap_baseq_at_mapq }}</td></tr>
      {% if alleles_vcf %}
      <tr><th>Alleles VCF</th><td><code>{{ alleles_vcf }}</code></td></tr>
      {% endif %}
      {% if alt_alleles %}
      <tr><th>Given ALT alleles</th><td>{{ alt_alleles | join(",") }}</td></tr>
      {% endif %}
    </table>
  </div>
</div>

<h2>Sites</h2>
<table>
  <tr><th>Covered sites</th><td>{{ counts.sites_total }}</td></tr>
  <tr><th>Variant sites</th><td>{{ counts.sites_variant }}</td></tr>
  <tr><th>Reference-only sites</th><td>{{ counts.sites_reference_only }}</td></tr>
  <tr><th>No call (non-ACGT reference or no known SNP)</th><td>{{ counts.sites_no_call }}</td></tr>
  <tr><th>Rejected (alleles conflict with reference)</th><td>{{ counts.sites_rejected }}</td></tr>
  <tr><th>VCF records written</th><td>{{ counts.sites_written }}</td></tr>
</table>

<h2>Plots</h2>

<div class="grid">
  <div class="card">
    <h3>Site outcomes</h3>
    <img src="{{ plots.site_outcomes }}" alt="site outcomes">
  </div>
  <div class="card">
    <h3>Depth at variant sites</h3>
    <img src="{{ plots.depth_hist }}" alt="depth histogram">
  </div>
</div>

<div class="grid" style="margin-top:16px;">
  <div class="card">
    <h3>ALT alleles per site</h3>
    <img src="{{ plots.alt_allele_counts }}" alt="alt allele counts">
  </div>
</div>

<h2>Outputs</h2>
<ul>
  <li><code>{{ vcf_out }}</code> (PL and DP per sample)</li>
  <li><code>{{ sites_tsv_gz }}</code> (per-site outcome)</li>
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<h2>Interpretation notes</h2>
<ul>
  <li>PL values are normalized per sample: the most likely genotype has PL 0.</li>
  <li>Alternate alleles are proposed greedily from per-sample likelihood gaps; no allele-frequency model or QUAL is computed.</li>
  <li>With <code>--emit-all-sites</code>, sites without evidence for an alternate carry a placeholder ALT so every sample gets PLs.</li>
</ul>


<hr>
<p class="small">snpgl {{ version }}</p>
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
        bam_paths=run.get("bam_paths", []),
        ref_fasta=run.get("ref_fasta"),
        region=run.get("region"),
        samples=run.get("samples", []),
        config=run.get("config", {}),
        alleles_vcf=run.get("alleles_vcf"),
        alt_alleles=run.get("alt_alleles"),
        vcf_out=run.get("vcf_out"),
        sites_tsv_gz=run.get("sites_tsv_gz"),
        counts=run.get("counts", {}),
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    logger.debug("Report written to %s", out_path)
    return out_path
