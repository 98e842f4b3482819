"""Quality adjustment of pileup elements.

A quality adjuster is any callable ``(element, offset) -> quality``. It is applied by
wrapping: every element is replaced by a copy carrying the adjusted quality as an
override, so the original observation remains available.
"""

from __future__ import annotations

import logging
from typing import Callable

from .errors import UserInputError
from .models import Pileup, PileupElement

logger = logging.getLogger(__name__)

QualityAdjuster = Callable[[PileupElement, int], int]

# samtools stores BAQ deltas as characters offset by 64
_BQ_TAG_OFFSET = 64


def adjust_pileup_qualities(pileup: Pileup, adjuster: QualityAdjuster) -> Pileup:
    """Apply ``adjuster`` to every element, preserving pileup order."""
    return Pileup(tuple(e.with_quality(adjuster(e, e.offset)) for e in pileup))


def baq_from_tag(element: PileupElement, offset: int) -> int:
    """Base quality corrected with a precomputed ``BQ`` tag.

    Reads without a tag keep their raw quality. The correction itself is computed
    upstream (e.g. ``samtools calmd -r``).
    """
    tag = element.baq_tag
    if tag is None:
        return element.qual
    if not 0 <= offset < len(tag):
        raise UserInputError(
            f"BQ tag of read {element.read_name} has length {len(tag)}; offset {offset} is out of range"
        )
    delta = ord(tag[offset]) - _BQ_TAG_OFFSET
    qual = element.qual - delta
    if qual < 0:
        raise UserInputError(
            f"BAQ-adjusted quality of read {element.read_name} is negative "
            f"(qual={element.qual}, BQ delta={delta}, offset={offset})"
        )
    return qual
