"""Diploid SNP genotype likelihoods from a pileup.

Each usable observation contributes, for every genotype ``(i, j)``::

    log10( 0.5 * P(obs | i) + 0.5 * P(obs | j) )

with ``P(obs | b) = 1 - e`` when ``b`` is the observed base and ``e / 3`` otherwise.
``e`` is the base error probability from the Phred quality, floored at the PCR
error rate. Contributions are summed across observations.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import numpy as np

from .genotypes import N_BASES, N_GENOTYPES, allele_pair, base_index, is_regular_base
from .models import GenotypeLikelihoods, Pileup
from .utils import phred_array_to_error_probs

logger = logging.getLogger(__name__)

DEFAULT_PCR_ERROR = 1e-4

# Columns of the per-base probability matrix feeding each genotype slot.
_FIRST = np.array([allele_pair(g)[0] for g in range(N_GENOTYPES)], dtype=int)
_SECOND = np.array([allele_pair(g)[1] for g in range(N_GENOTYPES)], dtype=int)


def _usable_observations(
    pileup: Pileup,
    *,
    min_baseq: int,
    cap_baseq_at_mapq: bool,
) -> Tuple[np.ndarray, np.ndarray]:
    """Return (base indices, qualities) of observations that pass the filters."""
    idx: List[int] = []
    quals: List[int] = []
    for e in pileup:
        b = base_index(e.base)
        if b < 0:
            continue
        q = int(e.effective_qual)
        if cap_baseq_at_mapq:
            q = min(q, int(e.mapq))
        if q <= 0 or q < min_baseq:
            continue
        idx.append(b)
        quals.append(q)
    return np.asarray(idx, dtype=int), np.asarray(quals, dtype=float)


def base_log10_likelihoods(
    base_indices: np.ndarray,
    quals: np.ndarray,
    *,
    pcr_error: float = DEFAULT_PCR_ERROR,
) -> np.ndarray:
    """Per-observation genotype log10 likelihoods, shape ``(n, 10)``."""
    err = np.maximum(phred_array_to_error_probs(quals), pcr_error)
    n = len(base_indices)
    p_base = np.repeat((err / 3.0)[:, None], N_BASES, axis=1)
    p_base[np.arange(n), base_indices] = 1.0 - err
    return np.log10(0.5 * p_base[:, _FIRST] + 0.5 * p_base[:, _SECOND])


def compute_genotype_likelihoods(
    pileup: Pileup,
    *,
    pcr_error: float = DEFAULT_PCR_ERROR,
    min_baseq: int = 0,
    cap_baseq_at_mapq: bool = True,
) -> Optional[GenotypeLikelihoods]:
    """Accumulate genotype log10 likelihoods over a pileup.

    Observations with a non-ACGT base, a zero quality, or a quality below
    ``min_baseq`` are skipped.

    Returns
    -------
    GenotypeLikelihoods or None
        ``None`` when no observation was usable.
    """
    base_indices, quals = _usable_observations(
        pileup, min_baseq=min_baseq, cap_baseq_at_mapq=cap_baseq_at_mapq
    )
    if len(base_indices) == 0:
        return None

    per_obs = base_log10_likelihoods(base_indices, quals, pcr_error=pcr_error)
    return GenotypeLikelihoods(log10=per_obs.sum(axis=0), n_good_bases=int(len(base_indices)))


def filtered_depth(pileup: Pileup) -> int:
    """Number of observations carrying a regular A/C/G/T base."""
    return sum(1 for e in pileup if is_regular_base(e.base))
