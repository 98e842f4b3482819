"""Contamination-aware pileup downsampling.

Every allele stratum is reduced by the same absolute number of reads,
``ceil(depth * fraction)``, rather than proportionally. A stratum no larger than
that number is removed entirely.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional

import numpy as np

from .genotypes import N_BASES, base_index
from .models import Pileup, PileupElement

logger = logging.getLogger(__name__)


def _sort_key(e: PileupElement) -> tuple:
    return (e.alignment_start, e.read_name)


def remove_random_elements(
    elements: List[PileupElement],
    n_remove: int,
    rng: np.random.Generator,
) -> List[PileupElement]:
    """Drop ``n_remove`` elements chosen uniformly without replacement; keep order."""
    if n_remove <= 0:
        return list(elements)
    if n_remove >= len(elements):
        return []
    drop = set(rng.choice(len(elements), size=n_remove, replace=False).tolist())
    return [e for i, e in enumerate(elements) if i not in drop]


def decontaminate_pileup(
    pileup: Pileup,
    fraction: float,
    rng: Optional[np.random.Generator] = None,
) -> Pileup:
    """Downsample a pileup to approximate the uncontaminated sample.

    Parameters
    ----------
    pileup:
        Observations for one sample.
    fraction:
        Estimated contamination fraction in [0, 1].
    rng:
        Source of randomness. Pass a seeded generator for reproducible output.

    Returns
    -------
    Pileup
        Kept elements sorted by (alignment start, read name). Elements with a
        non-ACGT base are not kept. Elements sharing a (start, name) key, such as
        overlapping mates, are all kept. ``fraction <= 0`` returns the input as is.
    """
    if fraction <= 0.0:
        return pileup
    if fraction >= 1.0:
        return Pileup()

    if rng is None:
        rng = np.random.default_rng()

    strata: List[List[PileupElement]] = [[] for _ in range(N_BASES)]
    for e in pileup:
        b = base_index(e.base)
        if b >= 0:
            strata[b].append(e)

    n_remove = int(math.ceil(len(pileup) * fraction))

    kept: List[PileupElement] = []
    for stratum in strata:
        kept.extend(remove_random_elements(stratum, n_remove, rng))

    kept.sort(key=_sort_key)
    logger.debug(
        "Decontaminated pileup: %d -> %d elements (fraction=%.3f, removed up to %d per allele)",
        len(pileup),
        len(kept),
        fraction,
        n_remove,
    )
    return Pileup(tuple(kept))
