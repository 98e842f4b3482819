from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"


def check_bam_index(bam_path: str | Path) -> None:
    """Ensure a BAM has an index; raise ValueError with fix instructions."""
    bam = Path(bam_path)
    bai1 = bam.with_suffix(bam.suffix + ".bai")
    bai2 = bam.with_suffix(".bai")
    csi = bam.with_suffix(bam.suffix + ".csi")
    if bai1.exists() or bai2.exists() or csi.exists():
        return
    raise ValueError(
        "BAM is not indexed. Run: samtools index " + str(bam)
    )


def check_fasta_index(fasta_path: str | Path) -> None:
    """Ensure a reference FASTA has a .fai index; raise ValueError with fix instructions."""
    fa = Path(fasta_path)
    fai = fa.with_suffix(fa.suffix + ".fai")
    if fai.exists():
        return
    raise ValueError(
        "Reference FASTA is not indexed. Run: samtools faidx " + str(fa)
    )


def check_vcf_index(vcf_path: str | Path) -> None:
    """Ensure a VCF can be queried by position; raise ValueError with fix instructions."""
    vcf = Path(vcf_path)
    if vcf.suffixes[-2:] == [".vcf", ".gz"]:
        tbi = vcf.with_suffix(vcf.suffix + ".tbi")
        csi = vcf.with_suffix(vcf.suffix + ".csi")
        if not (tbi.exists() or csi.exists()):
            raise ValueError(
                "VCF is not bgzip/tabix indexed. Run: tabix -p vcf " + str(vcf)
            )
        return
    raise ValueError(
        "Alleles VCF must be bgzip-compressed and tabix-indexed. Run: bgzip -c "
        + str(vcf)
        + " > "
        + str(vcf)
        + ".gz; tabix -p vcf "
        + str(vcf)
        + ".gz"
    )


def detect_contig_style(contigs: Iterable[str]) -> str:
    """Infer contig style: 'ucsc' if most contigs start with 'chr', else 'ensembl'."""
    names = [c for c in contigs if c]
    if not names:
        return "unknown"
    chr_like = [c for c in names if c.startswith(_UCSC_PREFIX)]
    if len(chr_like) >= max(1, int(0.5 * len(names))):
        return "ucsc"
    return "ensembl"


def check_contigs_match(bam_contigs: Iterable[str], ref_contigs: Iterable[str]) -> None:
    """Raise ValueError if a BAM shares no contig names with the reference."""
    bam_set = set(bam_contigs)
    ref_set = set(ref_contigs)
    if bam_set & ref_set:
        return
    raise ValueError(
        "Contig mismatch between BAM and reference FASTA "
        f"(BAM style={detect_contig_style(bam_set)}, FASTA style={detect_contig_style(ref_set)}). "
        "Align the reads against the same reference you pass with --ref."
    )
