from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class Locus:
    """A single reference position. Coordinates are 0-based."""

    chrom: str
    pos0: int

    def __str__(self) -> str:
        return f"{self.chrom}:{self.pos0 + 1}"


@dataclass(frozen=True)
class Allele:
    """A single-base allele.

    Two alleles are equal when their bases are equal; the reference flag does not
    take part in comparison or hashing.
    """

    base: str
    is_reference: bool = field(default=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "base", self.base.upper())

    def __str__(self) -> str:
        return self.base + ("*" if self.is_reference else "")


@dataclass(frozen=True)
class PileupElement:
    """One aligned read observation at a site.

    Attributes
    ----------
    base:
        Observed base (A/C/G/T; anything else is treated as non-standard).
    qual:
        Phred-scaled base quality as reported by the aligner.
    read_name:
        Query name of the read.
    alignment_start:
        0-based reference start of the read alignment.
    offset:
        Position of the observed base within the read sequence.
    mapq:
        Mapping quality of the read.
    adjacent_to_indel:
        The base is immediately followed by an insertion or deletion.
    adjacent_to_soft_clip:
        The base borders a soft-clipped segment.
    baq_tag:
        Raw samtools ``BQ`` tag of the read, if any.
    qual_override:
        Quality set by a quality adjuster. ``qual`` keeps the original value.
    """

    base: str
    qual: int
    read_name: str
    alignment_start: int
    offset: int = 0
    mapq: int = 60
    adjacent_to_indel: bool = False
    adjacent_to_soft_clip: bool = False
    baq_tag: Optional[str] = field(default=None, repr=False, compare=False)
    qual_override: Optional[int] = None

    @property
    def effective_qual(self) -> int:
        return self.qual if self.qual_override is None else self.qual_override

    def with_quality(self, qual: int) -> "PileupElement":
        """Return a copy whose effective quality is ``qual``."""
        return replace(self, qual_override=int(qual))


@dataclass(frozen=True)
class Pileup:
    """Ordered observations for one sample at one site."""

    elements: Tuple[PileupElement, ...] = ()

    @classmethod
    def of(cls, elements: Sequence[PileupElement]) -> "Pileup":
        return cls(tuple(elements))

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self) -> Iterator[PileupElement]:
        return iter(self.elements)

    def bases(self) -> str:
        return "".join(e.base for e in self.elements)


@dataclass(frozen=True)
class GenotypeLikelihoods:
    """Unnormalized log10 likelihoods over the 10 diploid genotypes of A/C/G/T.

    ``log10`` is indexed by ``pair_index(i, j)``; see :mod:`snpgl.genotypes`.
    """

    log10: np.ndarray = field(repr=False)
    n_good_bases: int

    def best_index(self) -> int:
        return int(np.argmax(self.log10))


@dataclass(frozen=True)
class SampleRecord:
    """Per-sample result at a site.

    ``likelihoods`` is normalized (max entry is 0) and ordered for the site's
    allele set.
    """

    sample: str
    likelihoods: np.ndarray = field(repr=False)
    depth: int

    @property
    def pl(self) -> Tuple[int, ...]:
        """Phred-scaled likelihoods as written to the VCF ``PL`` field."""
        return tuple(int(round(-10.0 * v)) for v in self.likelihoods)


@dataclass(frozen=True)
class SiteCall:
    """Final result for one site: reference-first alleles plus per-sample records."""

    locus: Locus
    alleles: Tuple[Allele, ...]
    samples: Tuple[SampleRecord, ...] = ()

    @property
    def ref(self) -> Allele:
        return self.alleles[0]

    @property
    def alts(self) -> Tuple[Allele, ...]:
        return self.alleles[1:]

    @property
    def is_variant(self) -> bool:
        return len(self.alleles) > 1
