from pathlib import Path

import pysam
import pytest

from snpgl.pileups import (
    _adjacent_to_soft_clip,
    bam_samples,
    count_positions,
    default_sample_name,
    iter_site_pileups,
    parse_region,
)
from snpgl.toy_data import TOY_CONTIG, TOY_REF_SEQ, make_toy_data


def make_read(name: str, start0: int, seq: str, cigar, *, bq=None) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = 0
    a.reference_id = 0
    a.reference_start = start0
    a.mapping_quality = 50
    a.cigartuples = cigar
    a.query_qualities = pysam.qualitystring_to_array("5" * len(seq))  # Q20
    if bq is not None:
        a.set_tag("BQ", bq, value_type="Z")
    return a


def test_parse_region():
    assert parse_region("chr1") == ("chr1", None, None)
    assert parse_region("chr1:51") == ("chr1", 50, 51)
    assert parse_region("chr1:1,001-2,000") == ("chr1", 1000, 2000)
    with pytest.raises(ValueError):
        parse_region("chr1:0-5")
    with pytest.raises(ValueError):
        parse_region("chr1:10-5")
    with pytest.raises(ValueError):
        parse_region("chr1:abc")


def test_default_sample_name():
    assert default_sample_name("/data/NA12878.bam") == "NA12878"
    assert default_sample_name("reads") == "reads"


def test_soft_clip_adjacency():
    aln = make_read("r", 10, "AAACCCCCTT", [(4, 3), (0, 5), (4, 2)])
    assert _adjacent_to_soft_clip(aln, 3)
    assert _adjacent_to_soft_clip(aln, 7)
    assert not _adjacent_to_soft_clip(aln, 5)


def test_toy_pileups_at_snp(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    sites = list(iter_site_pileups([toy["s1_bam"], toy["s2_bam"]], toy["ref_fa"], region="chr1:51"))
    assert len(sites) == 1
    site = sites[0]
    assert site.locus.chrom == TOY_CONTIG
    assert site.locus.pos0 == 50
    assert site.ref_base == "G"
    assert sorted(site.pileups) == ["S1", "S2"]
    assert site.pileups["S1"].bases() == "A" * 12
    assert site.pileups["S2"].bases() == "G" * 12
    e = site.pileups["S1"].elements[0]
    assert e.qual == 30
    assert e.mapq == 60
    assert e.read_name.startswith("S1_a")
    assert e.offset == 50 - e.alignment_start


def test_toy_pileups_cover_both_blocks(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    sites = list(iter_site_pileups([toy["s1_bam"], toy["s2_bam"]], toy["ref_fa"]))
    positions = [s.locus.pos0 for s in sites]
    assert positions == list(range(30, 81)) + list(range(100, 151))
    assert all(s.ref_base == TOY_REF_SEQ[s.locus.pos0] for s in sites)
    assert list(iter_site_pileups([toy["s1_bam"]], toy["ref_fa"], region="chr1:1-20")) == []


def test_unknown_contig_raises(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    with pytest.raises(ValueError):
        list(iter_site_pileups([toy["s1_bam"]], toy["ref_fa"], region="chrZ:1-10"))


def test_samples_and_position_counts(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    assert bam_samples([toy["s2_bam"], toy["s1_bam"], toy["s2_bam"]]) == ["S2", "S1"]
    assert count_positions(toy["ref_fa"]) == len(TOY_REF_SEQ)
    assert count_positions(toy["ref_fa"], "chr1:51-60") == 10
    assert count_positions(toy["ref_fa"], "chr1:195-300") == 6


def test_deletions_skipped_and_tags_kept(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    header = {"HD": {"VN": "1.6", "SO": "coordinate"}, "SQ": [{"SN": TOY_CONTIG, "LN": len(TOY_REF_SEQ)}]}
    bam_path = tmp_path / "edge.bam"
    with pysam.AlignmentFile(str(bam_path), "wb", header=header) as bam:
        bam.write(make_read("with_bq", 0, TOY_REF_SEQ[:10], [(0, 10)], bq="@A@@@@@@@@"))
        bam.write(make_read("with_del", 0, TOY_REF_SEQ[:5] + TOY_REF_SEQ[7:12], [(0, 5), (2, 2), (0, 5)]))
    pysam.index(str(bam_path))

    sites = {s.locus.pos0: s for s in iter_site_pileups([str(bam_path)], toy["ref_fa"], region="chr1:1-12")}
    sample = "edge"

    at1 = {e.read_name: e for e in sites[1].pileups[sample]}
    assert at1["with_bq"].baq_tag == "@A@@@@@@@@"
    assert at1["with_del"].baq_tag is None

    at4 = {e.read_name: e for e in sites[4].pileups[sample]}
    assert at4["with_del"].adjacent_to_indel
    assert not at4["with_bq"].adjacent_to_indel

    assert [e.read_name for e in sites[5].pileups[sample]] == ["with_bq"]
    assert [e.read_name for e in sites[6].pileups[sample]] == ["with_bq"]
    at7 = {e.read_name: e for e in sites[7].pileups[sample]}
    assert at7["with_del"].offset == 5


def test_count_positions_unknown_contig(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    with pytest.raises(ValueError, match="not in the reference FASTA"):
        count_positions(toy["ref_fa"], "chrZ:1-10")
