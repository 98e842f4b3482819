"""Reorder dense genotype likelihoods for a site's allele set.

For alleles ``a_0 .. a_{k-1}`` (reference first) the VCF ordering of genotype
likelihoods is ``F(i/j) = j * (j + 1) / 2 + i``, e.g. AA,AB,BB for a biallelic
site and AA,AB,BB,AC,BC,CC for a triallelic one.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from .genotypes import base_index, n_genotypes, pair_index
from .models import Allele
from .utils import normalize_from_log10


def pl_ordering(alleles: Sequence[Allele]) -> np.ndarray:
    """Map each slot of the site's genotype ordering to a dense 10-genotype slot."""
    mapped = [base_index(a.base) for a in alleles]
    if any(b < 0 for b in mapped):
        raise ValueError(f"Alleles must be A/C/G/T: {[a.base for a in alleles]}")

    k = len(mapped)
    ordering = np.zeros(n_genotypes(k), dtype=int)
    for i in range(k):
        for j in range(i, k):
            ordering[pair_index(i, j)] = pair_index(mapped[i], mapped[j])
    return ordering


def remap_likelihoods(log10_likelihoods: np.ndarray, ordering: np.ndarray) -> np.ndarray:
    """Reindex a dense likelihood vector and normalize so the best entry is 0."""
    return normalize_from_log10(np.asarray(log10_likelihoods, dtype=float)[ordering])
