"""Per-site SNP genotype likelihood calling.

:class:`SiteCaller` runs the full pipeline for one reference position:

1. per-sample pileups are optionally decontaminated and BAQ-adjusted,
2. genotype likelihoods are accumulated for every sample with usable bases,
3. the allele set is resolved (given alleles, a truth source, or discovery),
4. each sample's likelihoods are reordered for the allele set and normalized.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .discovery import determine_alternate_alleles
from .downsample import decontaminate_pileup
from .errors import UserInputError
from .genotypes import base_index, index_to_base
from .likelihoods import DEFAULT_PCR_ERROR, compute_genotype_likelihoods, filtered_depth
from .models import Allele, GenotypeLikelihoods, Locus, Pileup, SampleRecord, SiteCall
from .ordering import pl_ordering, remap_likelihoods
from .quality import QualityAdjuster, adjust_pileup_qualities, baq_from_tag

logger = logging.getLogger(__name__)

TruthSource = Callable[[Locus], Optional[Sequence[str]]]


class AlleleSource(str, enum.Enum):
    """Where the alternate alleles of a site come from."""

    DISCOVERY = "discovery"
    TRUTH = "truth"
    GIVEN = "given"


class OutputMode(str, enum.Enum):
    EMIT_VARIANTS_ONLY = "variants_only"
    EMIT_ALL_SITES = "all_sites"


@dataclass(frozen=True)
class CallerConfig:
    """Settings shared by every site of a run."""

    pcr_error: float = DEFAULT_PCR_ERROR
    min_baseq: int = 17
    contamination: float = 0.0
    use_baq: bool = False
    cap_baseq_at_mapq: bool = True
    allele_source: AlleleSource = AlleleSource.DISCOVERY
    output_mode: OutputMode = OutputMode.EMIT_VARIANTS_ONLY
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.contamination <= 1.0:
            raise ValueError("contamination must be in [0, 1]")
        if not 0.0 <= self.pcr_error < 1.0:
            raise ValueError("pcr_error must be in [0, 1)")
        if self.min_baseq < 0:
            raise ValueError("min_baseq must be >= 0")
        object.__setattr__(self, "allele_source", AlleleSource(self.allele_source))
        object.__setattr__(self, "output_mode", OutputMode(self.output_mode))


@dataclass(frozen=True)
class _SampleLikelihoods:
    sample: str
    likelihoods: GenotypeLikelihoods
    depth: int


def placeholder_alternate(ref_base: str) -> Allele:
    """Any base other than the reference; used to keep all-sites output well-formed."""
    return Allele(index_to_base(1 if base_index(ref_base) == 0 else 0))


def _single_base_allele(allele: str, locus: Locus) -> Allele:
    if len(allele) != 1 or base_index(allele) < 0:
        raise UserInputError(f"Allele {allele!r} is not a single A/C/G/T base", locus=locus)
    return Allele(allele)


class SiteCaller:
    """Compute genotype likelihoods and the allele set for one site at a time.

    Parameters
    ----------
    config:
        Run-wide settings.
    truth_source:
        Required for :attr:`AlleleSource.TRUTH`; returns the alleles (reference
        first) known at a locus, or None.
    quality_adjuster:
        Used when ``config.use_baq`` is set. Defaults to :func:`baq_from_tag`.
    rng:
        Random generator for decontamination. Defaults to one seeded with
        ``config.seed``.
    """

    def __init__(
        self,
        config: Optional[CallerConfig] = None,
        *,
        truth_source: Optional[TruthSource] = None,
        quality_adjuster: Optional[QualityAdjuster] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.config = config if config is not None else CallerConfig()
        if self.config.allele_source is AlleleSource.TRUTH and truth_source is None:
            raise ValueError("allele_source=truth requires a truth_source")
        self.truth_source = truth_source
        self.quality_adjuster = quality_adjuster if quality_adjuster is not None else baq_from_tag
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)

    def prepare_pileup(self, pileup: Pileup) -> Pileup:
        """Apply decontamination and quality adjustment as configured."""
        if self.config.contamination > 0.0:
            pileup = decontaminate_pileup(pileup, self.config.contamination, self.rng)
        if self.config.use_baq:
            pileup = adjust_pileup_qualities(pileup, self.quality_adjuster)
        return pileup

    def sample_likelihoods(self, pileups: Mapping[str, Pileup]) -> List[_SampleLikelihoods]:
        out: List[_SampleLikelihoods] = []
        for sample, pileup in pileups.items():
            pileup = self.prepare_pileup(pileup)
            gl = compute_genotype_likelihoods(
                pileup,
                pcr_error=self.config.pcr_error,
                min_baseq=self.config.min_baseq,
                cap_baseq_at_mapq=self.config.cap_baseq_at_mapq,
            )
            if gl is None:
                logger.debug("Sample %s has no usable bases", sample)
                continue
            out.append(_SampleLikelihoods(sample, gl, filtered_depth(pileup)))
        return out

    def _given_alleles(self, ref: Allele, alleles: Optional[Sequence[str]], locus: Locus) -> List[Allele]:
        if not alleles:
            raise ValueError("allele_source=given requires an allele list (reference first)")
        given = [_single_base_allele(a, locus) for a in alleles]
        if given[0] != ref:
            raise UserInputError(
                f"Given reference allele {given[0].base} does not match reference base {ref.base}",
                locus=locus,
            )
        alts = given[1:]
        if ref in alts:
            raise UserInputError(
                f"Alternate allele {ref.base} passed in is the same as the reference", locus=locus
            )
        return alts

    def _truth_alleles(self, ref: Allele, locus: Locus) -> Optional[List[Allele]]:
        assert self.truth_source is not None
        record = self.truth_source(locus)
        if record is None or len(record) < 2:
            return None
        if any(len(a) != 1 or base_index(a) < 0 for a in record):
            logger.debug("Truth record at %s is not a SNP: %s", locus, list(record))
            return None
        alts = [Allele(a) for a in record[1:]]
        if ref in alts:
            raise UserInputError(
                f"Alternate allele {ref.base} passed in is the same as the reference", locus=locus
            )
        return alts

    def call(
        self,
        locus: Locus,
        ref_base: str,
        pileups: Mapping[str, Pileup],
        alleles: Optional[Sequence[str]] = None,
    ) -> Optional[SiteCall]:
        """Call one site.

        Returns
        -------
        SiteCall or None
            None when the reference base is not A/C/G/T, or when the truth source
            has no SNP at the locus.

        Raises
        ------
        UserInputError
            When given or truth alleles conflict with the reference base.
        """
        ref_idx = base_index(ref_base)
        if ref_idx < 0:
            return None
        ref = Allele(ref_base, is_reference=True)

        per_sample = self.sample_likelihoods(pileups)

        source = self.config.allele_source
        if source is AlleleSource.GIVEN:
            alts = self._given_alleles(ref, alleles, locus)
        elif source is AlleleSource.TRUTH:
            truth_alts = self._truth_alleles(ref, locus)
            if truth_alts is None:
                return None
            alts = truth_alts
        else:
            alts = determine_alternate_alleles(ref.base, [s.likelihoods for s in per_sample])
            if not alts:
                if self.config.output_mode is OutputMode.EMIT_VARIANTS_ONLY:
                    return SiteCall(locus=locus, alleles=(ref,))
                alts = [placeholder_alternate(ref.base)]

        site_alleles: Tuple[Allele, ...] = (ref, *alts)
        ordering = pl_ordering(site_alleles)
        records: List[SampleRecord] = []
        for s in per_sample:
            records.append(
                SampleRecord(
                    sample=s.sample,
                    likelihoods=remap_likelihoods(s.likelihoods.log10, ordering),
                    depth=s.depth,
                )
            )
        return SiteCall(locus=locus, alleles=site_alleles, samples=tuple(records))


def call_site(
    locus: Locus,
    ref_base: str,
    pileups: Mapping[str, Pileup],
    *,
    config: Optional[CallerConfig] = None,
    alleles: Optional[Sequence[str]] = None,
    truth_source: Optional[TruthSource] = None,
    rng: Optional[np.random.Generator] = None,
) -> Optional[SiteCall]:
    """Convenience wrapper around :meth:`SiteCaller.call` for a single site."""
    caller = SiteCaller(config, truth_source=truth_source, rng=rng)
    return caller.call(locus, ref_base, pileups, alleles=alleles)

