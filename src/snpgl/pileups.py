"""Build per-sample pileups from indexed BAM files.

This module is plumbing around the likelihood model: it walks reference positions
with ``pysam`` and turns every aligned base into a :class:`PileupElement`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import pysam

from .models import Locus, Pileup, PileupElement

logger = logging.getLogger(__name__)

_REGION_RE = re.compile(r"^(?P<chrom>[^:]+)(?::(?P<start>[\d,]+)(?:-(?P<end>[\d,]+))?)?$")

_SOFT_CLIP = 4

# positions per pileup batch; bounds memory on whole-genome runs
_WINDOW = 100_000


@dataclass(frozen=True)
class SitePileups:
    """Everything the caller needs for one position."""

    locus: Locus
    ref_base: str
    pileups: Dict[str, Pileup]


def parse_region(region: str) -> Tuple[str, Optional[int], Optional[int]]:
    """Parse ``chrom[:start[-end]]`` (1-based, inclusive) into 0-based half-open coordinates."""
    m = _REGION_RE.match(region.strip())
    if m is None:
        raise ValueError(f"Could not parse region {region!r}; expected chrom[:start[-end]]")
    chrom = m.group("chrom")
    start = m.group("start")
    end = m.group("end")
    start0 = int(start.replace(",", "")) - 1 if start else None
    end0 = int(end.replace(",", "")) if end else None
    if start0 is not None and start0 < 0:
        raise ValueError(f"Region start must be >= 1: {region!r}")
    if start0 is not None and end0 is None:
        end0 = start0 + 1
    if start0 is not None and end0 is not None and end0 <= start0:
        raise ValueError(f"Region end must be >= start: {region!r}")
    return chrom, start0, end0


def read_group_samples(bam: pysam.AlignmentFile) -> Dict[str, str]:
    """Map read group ID -> SM from the BAM header."""
    out: Dict[str, str] = {}
    for rg in bam.header.to_dict().get("RG", []):
        rg_id = rg.get("ID")
        if rg_id is not None:
            out[str(rg_id)] = str(rg.get("SM", rg_id))
    return out


def default_sample_name(bam_path: str | Path) -> str:
    name = Path(bam_path).name
    for suffix in (".bam", ".cram", ".sam"):
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name


def _adjacent_to_soft_clip(aln: pysam.AlignedSegment, qpos: int) -> bool:
    cigar = aln.cigartuples
    if not cigar:
        return False
    first_op, first_len = cigar[0]
    if first_op == _SOFT_CLIP and qpos == first_len:
        return True
    last_op, last_len = cigar[-1]
    if last_op == _SOFT_CLIP and qpos == aln.query_length - last_len - 1:
        return True
    return False


def element_from_pileup_read(pread: pysam.PileupRead) -> Optional[PileupElement]:
    """Convert a pysam pileup read; deletions and reference skips give None."""
    if pread.is_del or pread.is_refskip or pread.query_position is None:
        return None
    aln = pread.alignment
    qpos = int(pread.query_position)
    seq = aln.query_sequence
    if seq is None or qpos >= len(seq):
        return None
    quals = aln.query_qualities
    qual = int(quals[qpos]) if quals is not None else 0
    baq_tag = str(aln.get_tag("BQ")) if aln.has_tag("BQ") else None
    return PileupElement(
        base=seq[qpos].upper(),
        qual=qual,
        read_name=str(aln.query_name),
        alignment_start=int(aln.reference_start),
        offset=qpos,
        mapq=int(aln.mapping_quality),
        adjacent_to_indel=pread.indel != 0,
        adjacent_to_soft_clip=_adjacent_to_soft_clip(aln, qpos),
        baq_tag=baq_tag,
    )


class _BamSource:
    def __init__(self, path: str, default_sample: str) -> None:
        self.path = path
        self.bam = pysam.AlignmentFile(path, "rb")
        self.rg_samples = read_group_samples(self.bam)
        self.default_sample = default_sample
        self.n_unassigned = 0

    @property
    def samples(self) -> List[str]:
        if self.rg_samples:
            return sorted(set(self.rg_samples.values()))
        return [self.default_sample]

    def sample_of(self, aln: pysam.AlignedSegment) -> Optional[str]:
        """Sample of a read; None for a missing or unknown RG in a BAM that declares read groups."""
        if not self.rg_samples:
            return self.default_sample
        if not aln.has_tag("RG"):
            return None
        return self.rg_samples.get(str(aln.get_tag("RG")))

    def close(self) -> None:
        if self.n_unassigned:
            logger.warning(
                "Skipped %d pileup bases in %s from reads without a known read group",
                self.n_unassigned,
                self.path,
            )
        self.bam.close()


def bam_samples(bam_paths: Sequence[str]) -> List[str]:
    """Sample names found across BAM files, in first-seen order."""
    names: List[str] = []
    for path in bam_paths:
        src = _BamSource(path, default_sample_name(path))
        try:
            for s in src.samples:
                if s not in names:
                    names.append(s)
        finally:
            src.close()
    return names


def count_positions(ref_fasta: str, region: Optional[str] = None) -> int:
    """Number of reference positions a run over ``region`` (or the whole FASTA) visits."""
    with pysam.FastaFile(ref_fasta) as fasta:
        if region is None:
            return int(sum(fasta.lengths))
        chrom, start0, end0 = parse_region(region)
        if chrom not in fasta.references:
            raise ValueError(f"Contig {chrom!r} is not in the reference FASTA")
        length = fasta.get_reference_length(chrom)
    s = 0 if start0 is None else start0
    e = length if end0 is None else min(end0, length)
    return max(0, e - s)


def iter_site_pileups(
    bam_paths: Sequence[str],
    ref_fasta: str,
    *,
    region: Optional[str] = None,
    min_mapq: int = 0,
) -> Iterator[SitePileups]:
    """Yield pileups for every covered position, merged across BAM files.

    Without ``region`` all contigs of the reference are visited in order. Reads
    that are unmapped, secondary, QC-failed or duplicates are skipped by the pysam
    ``all`` stepper.
    """
    fasta = pysam.FastaFile(ref_fasta)
    sources = [_BamSource(p, default_sample_name(p)) for p in bam_paths]
    try:
        if region is not None:
            targets = [parse_region(region)]
        else:
            targets = [(c, None, None) for c in fasta.references]

        for chrom, start0, end0 in targets:
            if chrom not in fasta.references:
                raise ValueError(f"Contig {chrom!r} is not in the reference FASTA")
            yield from _iter_contig(sources, fasta, chrom, start0, end0, min_mapq=min_mapq)
    finally:
        for src in sources:
            src.close()
        fasta.close()


def _collect_window(
    sources: Sequence[_BamSource],
    chrom: str,
    start0: int,
    end0: int,
    *,
    min_mapq: int,
) -> Dict[int, Dict[str, List[PileupElement]]]:
    by_pos: Dict[int, Dict[str, List[PileupElement]]] = {}
    for src in sources:
        if chrom not in src.bam.references:
            logger.debug("Contig %s absent from %s", chrom, src.path)
            continue
        columns = src.bam.pileup(
            chrom,
            start0,
            end0,
            truncate=True,
            stepper="all",
            min_base_quality=0,
            min_mapping_quality=min_mapq,
            ignore_overlaps=False,
            ignore_orphans=False,
            max_depth=1_000_000,
        )
        for col in columns:
            site = by_pos.setdefault(int(col.reference_pos), {})
            for pread in col.pileups:
                elem = element_from_pileup_read(pread)
                if elem is None:
                    continue
                sample = src.sample_of(pread.alignment)
                if sample is None:
                    src.n_unassigned += 1
                    continue
                site.setdefault(sample, []).append(elem)
    return by_pos


def _iter_contig(
    sources: Sequence[_BamSource],
    fasta: pysam.FastaFile,
    chrom: str,
    start0: Optional[int],
    end0: Optional[int],
    *,
    min_mapq: int,
    window: int = _WINDOW,
) -> Iterator[SitePileups]:
    length = fasta.get_reference_length(chrom)
    s = 0 if start0 is None else start0
    e = length if end0 is None else min(end0, length)

    for ws in range(s, e, window):
        we = min(ws + window, e)
        by_pos = _collect_window(sources, chrom, ws, we, min_mapq=min_mapq)
        if not by_pos:
            continue
        ref_seq = fasta.fetch(chrom, ws, we).upper()
        for pos0 in sorted(by_pos):
            samples = by_pos[pos0]
            if not samples:
                continue
            yield SitePileups(
                locus=Locus(chrom, pos0),
                ref_base=ref_seq[pos0 - ws],
                pileups={s_: Pileup(tuple(elems)) for s_, elems in samples.items()},
            )
