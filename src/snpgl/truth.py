from __future__ import annotations

import logging
from typing import Optional, Tuple

import pysam

from .models import Locus

logger = logging.getLogger(__name__)


class VcfTruthSource:
    """Known alleles from an indexed VCF, used to genotype given sites.

    Calling the instance with a :class:`Locus` returns the alleles (reference
    first) of the first record starting at that position, or None.
    """

    def __init__(self, vcf_path: str) -> None:
        self.vcf_path = vcf_path
        self.vcf = pysam.VariantFile(vcf_path)
        self._contigs = set(self.vcf.header.contigs)

    def __call__(self, locus: Locus) -> Optional[Tuple[str, ...]]:
        if self._contigs and locus.chrom not in self._contigs:
            return None
        for rec in self.vcf.fetch(locus.chrom, locus.pos0, locus.pos0 + 1):
            if rec.start != locus.pos0:
                continue
            if rec.alleles is None:
                return None
            return tuple(str(a).upper() for a in rec.alleles)
        return None

    def close(self) -> None:
        self.vcf.close()

    def __enter__(self) -> "VcfTruthSource":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
