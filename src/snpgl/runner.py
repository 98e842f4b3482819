from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pysam
from tqdm import tqdm

from .caller import AlleleSource, CallerConfig, SiteCaller
from .errors import UserInputError
from .models import SiteCall
from .pileups import SitePileups, bam_samples, count_positions, iter_site_pileups
from .truth import VcfTruthSource
from .utils import ensure_outdir, open_textmaybe_gzip, write_json
from .vcfout import index_vcf, open_vcf_writer, write_site_call

logger = logging.getLogger(__name__)

_SITES_TSV_COLUMNS = [
    "chrom",
    "pos",
    "ref",
    "alts",
    "status",
    "n_samples",
    "depth_total",
]


def _reference_contigs(ref_fasta: str) -> List[tuple]:
    with pysam.FastaFile(ref_fasta) as fa:
        return list(zip(fa.references, fa.lengths))


def _site_row(site: SitePileups, call: Optional[SiteCall], status: str) -> str:
    alts = ",".join(a.base for a in call.alts) if call is not None and call.alts else "."
    n_samples = len(call.samples) if call is not None else 0
    depth = sum(s.depth for s in call.samples) if call is not None else 0
    return (
        f"{site.locus.chrom}\t{site.locus.pos0 + 1}\t{site.ref_base}\t{alts}\t"
        f"{status}\t{n_samples}\t{depth}\n"
    )


def call_region(
    *,
    bam_paths: Sequence[str],
    ref_fasta: str,
    outdir: str | Path,
    config: Optional[CallerConfig] = None,
    region: Optional[str] = None,
    min_mapq: int = 0,
    alleles_vcf: Optional[str] = None,
    alt_alleles: Optional[Sequence[str]] = None,
    vcf_out: Optional[str] = None,
    sites_tsv_gz: Optional[str] = None,
    progress: bool = True,
) -> Dict[str, object]:
    """Main workhorse: iterate pileups, call every site, write outputs, return a summary dict.

    A site whose given or truth alleles conflict with the reference is logged and
    counted in ``sites_rejected``; the run continues with the next site.
    """
    t0 = time.time()
    config = config if config is not None else CallerConfig()
    outdir_path = ensure_outdir(outdir)

    if config.allele_source is AlleleSource.TRUTH and alleles_vcf is None:
        raise ValueError("allele_source=truth requires alleles_vcf")
    if config.allele_source is AlleleSource.GIVEN and not alt_alleles:
        raise ValueError("allele_source=given requires alt_alleles")

    truth: Optional[VcfTruthSource] = None
    if config.allele_source is AlleleSource.TRUTH:
        truth = VcfTruthSource(str(alleles_vcf))

    caller = SiteCaller(config, truth_source=truth)
    samples = bam_samples(bam_paths)
    logger.info("Samples: %s", ", ".join(samples))

    if vcf_out is None:
        vcf_out = str(outdir_path / "calls.vcf.gz")
    if sites_tsv_gz is None:
        sites_tsv_gz = str(outdir_path / "sites.tsv.gz")

    vcf = open_vcf_writer(vcf_out, _reference_contigs(ref_fasta), samples)
    tsv_fh = open_textmaybe_gzip(sites_tsv_gz, "wt")
    tsv_fh.write("\t".join(_SITES_TSV_COLUMNS) + "\n")

    counts = {
        "sites_total": 0,
        "sites_no_call": 0,
        "sites_rejected": 0,
        "sites_reference_only": 0,
        "sites_variant": 0,
        "sites_written": 0,
    }
    depth_hist: Dict[str, Dict[int, int]] = {s: {} for s in samples}
    alt_count_hist: Dict[int, int] = {}

    it: Iterable[SitePileups] = iter_site_pileups(
        bam_paths, ref_fasta, region=region, min_mapq=min_mapq
    )
    if progress:
        it = tqdm(it, unit="site", desc="Calling sites", total=count_positions(ref_fasta, region))

    try:
        for site in it:
            counts["sites_total"] += 1
            given = None
            if config.allele_source is AlleleSource.GIVEN:
                given = [site.ref_base, *alt_alleles]  # type: ignore[misc]

            try:
                call = caller.call(site.locus, site.ref_base, site.pileups, alleles=given)
            except UserInputError as e:
                logger.warning("Skipping site: %s", e)
                counts["sites_rejected"] += 1
                tsv_fh.write(_site_row(site, None, "rejected"))
                continue

            if call is None:
                counts["sites_no_call"] += 1
                tsv_fh.write(_site_row(site, None, "no_call"))
                continue

            if not call.is_variant:
                counts["sites_reference_only"] += 1
                tsv_fh.write(_site_row(site, call, "reference_only"))
                continue

            counts["sites_variant"] += 1
            n_alts = len(call.alts)
            alt_count_hist[n_alts] = alt_count_hist.get(n_alts, 0) + 1
            for rec in call.samples:
                hist = depth_hist.setdefault(rec.sample, {})
                hist[rec.depth] = hist.get(rec.depth, 0) + 1

            if write_site_call(vcf, call):
                counts["sites_written"] += 1
            tsv_fh.write(_site_row(site, call, "called"))
    finally:
        tsv_fh.close()
        vcf.close()
        if truth is not None:
            truth.close()

    if vcf_out.endswith(".gz"):
        index_vcf(vcf_out)

    dt = time.time() - t0

    summary = {
        "bam_paths": list(bam_paths),
        "ref_fasta": ref_fasta,
        "region": region,
        "samples": samples,
        "config": {
            "pcr_error": float(config.pcr_error),
            "min_baseq": int(config.min_baseq),
            "min_mapq": int(min_mapq),
            "contamination": float(config.contamination),
            "use_baq": bool(config.use_baq),
            "cap_baseq_at_mapq": bool(config.cap_baseq_at_mapq),
            "allele_source": config.allele_source.value,
            "output_mode": config.output_mode.value,
            "seed": config.seed,
        },
        "alleles_vcf": alleles_vcf,
        "alt_alleles": list(alt_alleles) if alt_alleles else None,
        "vcf_out": str(vcf_out),
        "sites_tsv_gz": str(sites_tsv_gz),
        "counts": counts,
        "depth_hist": depth_hist,
        "alt_count_hist": alt_count_hist,
        "runtime_seconds": float(dt),
    }

    write_json(outdir_path / "summary.json", summary)
    logger.info(
        "Called %d sites: %d variant, %d reference-only, %d no-call, %d rejected",
        counts["sites_total"],
        counts["sites_variant"],
        counts["sites_reference_only"],
        counts["sites_no_call"],
        counts["sites_rejected"],
    )
    return summary
