from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import pysam

from .utils import ensure_outdir, write_json

TOY_CONTIG = "chr1"
TOY_REF_SEQ = ("ACGT" * 50)[:200]
# 0-based positions of the planted SNPs
TOY_HOM_SNP = 50
TOY_HET_SNP = 120


def _write_fasta(path: Path, contig: str, seq: str) -> None:
    lines = [f">{contig}"]
    for i in range(0, len(seq), 60):
        lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _mutate_base(base: str) -> str:
    for alt in ["A", "C", "G", "T"]:
        if alt != base:
            return alt
    return "A"


def _make_read(
    name: str,
    start0: int,
    seq: str,
    *,
    read_group: Optional[str] = None,
    mapq: int = 60,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = 0
    a.reference_id = 0
    a.reference_start = start0
    a.mapping_quality = mapq
    a.cigartuples = [(0, len(seq))]
    a.query_qualities = pysam.qualitystring_to_array("?" * len(seq))  # Q30
    if read_group is not None:
        a.set_tag("RG", read_group, value_type="Z")
    return a


def _write_sample_bam(
    path: Path,
    sample: str,
    ref_seq: str,
    *,
    hom_alt: bool,
    het_alt: bool,
    n_reads: int = 12,
) -> None:
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": TOY_CONTIG, "LN": len(ref_seq)}],
        "RG": [{"ID": f"rg_{sample}", "SM": sample}],
    }
    alt_hom = _mutate_base(ref_seq[TOY_HOM_SNP])
    alt_het = _mutate_base(ref_seq[TOY_HET_SNP])

    reads: List[pysam.AlignedSegment] = []
    for block, snp in (("a", TOY_HOM_SNP), ("b", TOY_HET_SNP)):
        for i in range(n_reads):
            start0 = snp - 20 + i
            seq = list(ref_seq[start0 : start0 + 40])
            rel = snp - start0
            if snp == TOY_HOM_SNP and hom_alt:
                seq[rel] = alt_hom
            if snp == TOY_HET_SNP and het_alt and i % 2 == 0:
                seq[rel] = alt_het
            reads.append(_make_read(f"{sample}_{block}{i}", start0, "".join(seq), read_group=f"rg_{sample}"))

    reads.sort(key=lambda r: r.reference_start)
    with pysam.AlignmentFile(str(path), "wb", header=header) as bam:
        for r in reads:
            bam.write(r)
    pysam.index(str(path))


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a tiny reference, two sample BAMs, and a known-alleles VCF.

    Sample ``S1`` is homozygous alternate at position 51 and heterozygous at 121
    (1-based); sample ``S2`` is homozygous reference at 51 and heterozygous at 121.

    The outputs include:
    - toy_ref.fa (+ .fai)
    - S1.bam, S2.bam (+ .bai)
    - known_alleles.vcf.gz (+ .tbi)

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)

    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, TOY_CONTIG, TOY_REF_SEQ)
    pysam.faidx(str(ref_fa))

    s1_bam = outdir_p / "S1.bam"
    s2_bam = outdir_p / "S2.bam"
    _write_sample_bam(s1_bam, "S1", TOY_REF_SEQ, hom_alt=True, het_alt=True)
    _write_sample_bam(s2_bam, "S2", TOY_REF_SEQ, hom_alt=False, het_alt=True)

    vcf_path = outdir_p / "known_alleles.vcf"
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.contigs.add(TOY_CONTIG, length=len(TOY_REF_SEQ))

    with pysam.VariantFile(str(vcf_path), "w", header=header) as vcf:
        for pos0 in (TOY_HOM_SNP, TOY_HET_SNP):
            ref_base = TOY_REF_SEQ[pos0]
            alt_base = _mutate_base(ref_base)
            rec = vcf.new_record(
                contig=TOY_CONTIG,
                start=pos0,
                stop=pos0 + 1,
                alleles=(ref_base, alt_base),
                id=f"{TOY_CONTIG}:{pos0 + 1}:{ref_base}:{alt_base}",
                qual=60,
                filter="PASS",
            )
            vcf.write(rec)

    vcf_gz = outdir_p / "known_alleles.vcf.gz"
    pysam.tabix_compress(str(vcf_path), str(vcf_gz), force=True)
    pysam.tabix_index(str(vcf_gz), preset="vcf", force=True)

    summary = {
        "ref_fa": str(ref_fa),
        "s1_bam": str(s1_bam),
        "s2_bam": str(s2_bam),
        "alleles_vcf": str(vcf_gz),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
