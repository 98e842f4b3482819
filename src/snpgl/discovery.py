from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np

from .genotypes import N_BASES, allele_pair, base_index, index_to_base, pair_index
from .models import Allele, GenotypeLikelihoods

logger = logging.getLogger(__name__)


def alternate_likelihood_sums(
    ref_base: str,
    likelihoods: Sequence[GenotypeLikelihoods],
) -> np.ndarray:
    """Per-base sum of (best genotype - ref-hom genotype) log10 gaps across samples.

    A sample whose best genotype is not ref-hom credits its gap to each
    non-reference base of that genotype, once per base.
    """
    ref_idx = base_index(ref_base)
    if ref_idx < 0:
        raise ValueError(f"Reference base must be A/C/G/T, got {ref_base!r}")
    ref_gt = pair_index(ref_idx, ref_idx)

    sums = np.zeros(N_BASES, dtype=float)
    for gl in likelihoods:
        values = gl.log10
        best = int(np.argmax(values))
        if best == ref_gt:
            continue
        gap = float(values[best] - values[ref_gt])
        a1, a2 = allele_pair(best)
        if a1 != ref_idx:
            sums[a1] += gap
        if a2 != ref_idx and a2 != a1:
            sums[a2] += gap
    return sums


def determine_alternate_alleles(
    ref_base: str,
    likelihoods: Sequence[GenotypeLikelihoods],
) -> List[Allele]:
    """Propose alternate alleles supported by the per-sample likelihoods.

    Any base whose accumulated gap is strictly positive becomes an alternate, in
    A, C, G, T order. This is a greedy heuristic, not a joint maximum-likelihood
    search over allele sets.
    """
    sums = alternate_likelihood_sums(ref_base, likelihoods)
    alts = [Allele(index_to_base(i)) for i in range(N_BASES) if sums[i] > 0.0]
    logger.debug("Alternate likelihood sums %s -> %s", sums.tolist(), [a.base for a in alts])
    return alts
