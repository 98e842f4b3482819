"""Base indexing and the canonical diploid genotype enumeration.

Genotypes ``(i, j)`` with ``i <= j`` are enumerated by the VCF pairing
``pair_index(i, j) = j * (j + 1) / 2 + i``. For the four-base alphabet this gives
10 slots: AA, AC, CC, AG, CG, GG, AT, CT, GT, TT.
"""

from __future__ import annotations

from typing import List, Tuple

BASES = "ACGT"
N_BASES = len(BASES)
N_GENOTYPES = N_BASES * (N_BASES + 1) // 2

_BASE_TO_INDEX = {b: i for i, b in enumerate(BASES)}
_BASE_TO_INDEX.update({b.lower(): i for i, b in enumerate(BASES)})


def base_index(base: str) -> int:
    """Dense index of a base, or -1 for anything that is not A/C/G/T."""
    return _BASE_TO_INDEX.get(base, -1)


def is_regular_base(base: str) -> bool:
    return base in _BASE_TO_INDEX


def index_to_base(index: int) -> str:
    return BASES[index]


def n_genotypes(n_alleles: int) -> int:
    return n_alleles * (n_alleles + 1) // 2


def pair_index(i: int, j: int) -> int:
    """Slot of genotype ``(i, j)``. Argument order does not matter."""
    if i > j:
        i, j = j, i
    return j * (j + 1) // 2 + i


def _build_pairs(n: int) -> List[Tuple[int, int]]:
    pairs: List[Tuple[int, int]] = [(0, 0)] * n_genotypes(n)
    for j in range(n):
        for i in range(j + 1):
            pairs[pair_index(i, j)] = (i, j)
    return pairs


_PAIRS = _build_pairs(N_BASES)


def allele_pair(index: int) -> Tuple[int, int]:
    """Inverse of :func:`pair_index` over the four-base alphabet."""
    return _PAIRS[index]


def genotype_name(index: int) -> str:
    i, j = allele_pair(index)
    return f"{BASES[i]}/{BASES[j]}"
