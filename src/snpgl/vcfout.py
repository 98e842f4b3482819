from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence, Tuple

import pysam

from .models import SiteCall

logger = logging.getLogger(__name__)


def build_header(contigs: Sequence[Tuple[str, int]], samples: Sequence[str]) -> pysam.VariantHeader:
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.add_meta("source", "snpgl")
    for name, length in contigs:
        header.contigs.add(name, length=length)
    # GT is always a no-call (./.); PL with Number=G is sized from it
    header.formats.add("GT", number=1, type="String", description="Genotype")
    header.formats.add(
        "PL",
        number="G",
        type="Integer",
        description="Normalized, Phred-scaled likelihoods for genotypes as defined in the VCF specification",
    )
    header.formats.add(
        "DP",
        number=1,
        type="Integer",
        description="Read depth with a regular A/C/G/T base at the site",
    )
    for s in samples:
        header.add_sample(s)
    return header


def open_vcf_writer(
    path: str | Path,
    contigs: Sequence[Tuple[str, int]],
    samples: Sequence[str],
) -> pysam.VariantFile:
    """Open a VCF for writing; ``.gz`` paths are BGZF-compressed."""
    mode = "wz" if str(path).endswith(".gz") else "w"
    return pysam.VariantFile(str(path), mode, header=build_header(contigs, samples))


def write_site_call(vcf: pysam.VariantFile, call: SiteCall) -> bool:
    """Write one call. Returns False for reference-only calls, which are not written."""
    if not call.is_variant:
        return False
    rec = vcf.new_record(
        contig=call.locus.chrom,
        start=call.locus.pos0,
        stop=call.locus.pos0 + 1,
        alleles=tuple(a.base for a in call.alleles),
    )
    for sample_rec in call.samples:
        rec.samples[sample_rec.sample]["GT"] = (None, None)
        rec.samples[sample_rec.sample]["PL"] = sample_rec.pl
        rec.samples[sample_rec.sample]["DP"] = int(sample_rec.depth)
    vcf.write(rec)
    return True


def index_vcf(path: str | Path) -> None:
    pysam.tabix_index(str(path), preset="vcf", force=True)
