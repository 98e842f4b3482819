import gzip
import json
from pathlib import Path

import pysam
import pytest

from snpgl.caller import AlleleSource, CallerConfig, OutputMode, call_site
from snpgl.models import Locus, Pileup, PileupElement
from snpgl.runner import call_region
from snpgl.toy_data import TOY_CONTIG, TOY_REF_SEQ, make_toy_data
from snpgl.truth import VcfTruthSource
from snpgl.vcfout import open_vcf_writer, write_site_call


@pytest.fixture()
def toy(tmp_path: Path) -> dict:
    return make_toy_data(outdir=tmp_path / "toy")


def _records(path: str) -> dict:
    with pysam.VariantFile(path) as vcf:
        return {
            rec.pos: (rec.alleles, {s: (rec.samples[s]["PL"], rec.samples[s]["DP"]) for s in rec.samples})
            for rec in vcf
        }


def test_discovery_run(toy: dict, tmp_path: Path):
    run = call_region(
        bam_paths=[toy["s1_bam"], toy["s2_bam"]],
        ref_fasta=toy["ref_fa"],
        outdir=tmp_path / "out",
        progress=False,
    )
    counts = run["counts"]
    assert counts["sites_total"] == 102
    assert counts["sites_variant"] == 2
    assert counts["sites_reference_only"] == 100
    assert counts["sites_written"] == 2
    assert counts["sites_no_call"] == 0
    assert run["samples"] == ["S1", "S2"]
    assert run["alt_count_hist"] == {1: 2}
    assert run["depth_hist"]["S1"] == {12: 2}

    recs = _records(run["vcf_out"])
    assert sorted(recs) == [51, 121]

    alleles, samples = recs[51]
    assert alleles == ("G", "A")
    s1_pl, s1_dp = samples["S1"]
    s2_pl, _ = samples["S2"]
    assert s1_dp == 12
    assert s1_pl[2] == 0 and s1_pl[0] > 0
    assert s2_pl[0] == 0 and s2_pl[2] > 0

    alleles, samples = recs[121]
    assert alleles == ("A", "C")
    assert samples["S1"][0][1] == 0
    assert samples["S2"][0][1] == 0

    assert Path(run["vcf_out"] + ".tbi").exists()
    on_disk = json.loads((tmp_path / "out" / "summary.json").read_text(encoding="utf-8"))
    assert on_disk["counts"] == counts
    assert on_disk["config"]["allele_source"] == "discovery"

    with gzip.open(run["sites_tsv_gz"], "rt") as f:
        rows = [line.rstrip("\n").split("\t") for line in f]
    assert rows[0] == ["chrom", "pos", "ref", "alts", "status", "n_samples", "depth_total"]
    called = [r for r in rows[1:] if r[4] == "called"]
    assert [(r[1], r[3], r[6]) for r in called] == [("51", "A", "24"), ("121", "C", "24")]


def test_all_sites_mode_writes_every_covered_site(toy: dict, tmp_path: Path):
    run = call_region(
        bam_paths=[toy["s1_bam"]],
        ref_fasta=toy["ref_fa"],
        outdir=tmp_path / "all",
        config=CallerConfig(output_mode=OutputMode.EMIT_ALL_SITES),
        progress=False,
    )
    assert run["counts"]["sites_written"] == 102
    assert run["counts"]["sites_reference_only"] == 0


def test_truth_run_genotypes_known_sites_only(toy: dict, tmp_path: Path):
    run = call_region(
        bam_paths=[toy["s2_bam"]],
        ref_fasta=toy["ref_fa"],
        outdir=tmp_path / "truth",
        config=CallerConfig(allele_source=AlleleSource.TRUTH),
        alleles_vcf=toy["alleles_vcf"],
        progress=False,
    )
    assert run["counts"]["sites_variant"] == 2
    assert run["counts"]["sites_no_call"] == 100
    recs = _records(run["vcf_out"])
    assert recs[51][0] == ("G", "A")
    assert recs[51][1]["S2"][0][0] == 0


def test_truth_run_requires_vcf(toy: dict, tmp_path: Path):
    with pytest.raises(ValueError):
        call_region(
            bam_paths=[toy["s1_bam"]],
            ref_fasta=toy["ref_fa"],
            outdir=tmp_path / "x",
            config=CallerConfig(allele_source=AlleleSource.TRUTH),
            progress=False,
        )


def test_given_alleles_conflict_is_rejected_per_site(toy: dict, tmp_path: Path):
    cfg = CallerConfig(allele_source=AlleleSource.GIVEN)
    ok = call_region(
        bam_paths=[toy["s1_bam"]],
        ref_fasta=toy["ref_fa"],
        outdir=tmp_path / "ok",
        config=cfg,
        region="chr1:121",
        alt_alleles=["C"],
        progress=False,
    )
    assert ok["counts"]["sites_variant"] == 1

    # reference at 122 is C, so the given ALT equals REF
    bad = call_region(
        bam_paths=[toy["s1_bam"]],
        ref_fasta=toy["ref_fa"],
        outdir=tmp_path / "bad",
        config=cfg,
        region="chr1:121-122",
        alt_alleles=["C"],
        progress=False,
    )
    assert bad["counts"]["sites_total"] == 2
    assert bad["counts"]["sites_rejected"] == 1
    assert bad["counts"]["sites_variant"] == 1


def test_vcf_truth_source(toy: dict):
    with VcfTruthSource(toy["alleles_vcf"]) as truth:
        assert truth(Locus("chr1", 50)) == ("G", "A")
        assert truth(Locus("chr1", 51)) is None
        assert truth(Locus("chrX", 50)) is None


def test_written_records_carry_pl_with_no_call_genotype(tmp_path: Path):
    pileup = Pileup.of(
        [PileupElement(base="G", qual=30, read_name=f"r{i}", alignment_start=i) for i in range(10)]
    )
    call = call_site(Locus("chr1", 9), "A", {"S1": pileup})
    assert call is not None

    out = tmp_path / "one.vcf"
    with open_vcf_writer(out, [("chr1", 100)], ["S1", "S2"]) as vcf:
        assert write_site_call(vcf, call)

    with pysam.VariantFile(str(out)) as vcf:
        (rec,) = list(vcf)
    assert rec.pos == 10
    assert rec.alleles == ("A", "G")
    assert rec.samples["S1"]["GT"] == (None, None)
    assert rec.samples["S1"]["PL"] == call.samples[0].pl
    assert rec.samples["S1"]["PL"][2] == 0
    assert rec.samples["S1"]["DP"] == 10


def _write_mixed_rg_bam(path: Path) -> Path:
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": TOY_CONTIG, "LN": len(TOY_REF_SEQ)}],
        "RG": [{"ID": "rg1", "SM": "X"}],
    }
    with pysam.AlignmentFile(str(path), "wb", header=header) as bam:
        for i in range(12):
            start0 = 30 + i
            seq = list(TOY_REF_SEQ[start0 : start0 + 40])
            seq[50 - start0] = "A"
            a = pysam.AlignedSegment()
            a.query_name = f"m{i}"
            a.query_sequence = "".join(seq)
            a.flag = 0
            a.reference_id = 0
            a.reference_start = start0
            a.mapping_quality = 60
            a.cigartuples = [(0, 40)]
            a.query_qualities = pysam.qualitystring_to_array("?" * 40)
            if i % 2 == 0:
                a.set_tag("RG", "rg1", value_type="Z")
            bam.write(a)
    pysam.index(str(path))
    return path


def test_reads_without_read_group_are_skipped(toy: dict, tmp_path: Path):
    bam = _write_mixed_rg_bam(tmp_path / "mixed.bam")
    run = call_region(
        bam_paths=[str(bam)],
        ref_fasta=toy["ref_fa"],
        outdir=tmp_path / "mixed_out",
        progress=False,
    )
    assert run["samples"] == ["X"]
    assert run["counts"]["sites_variant"] == 1
    recs = _records(run["vcf_out"])
    alleles, samples = recs[51]
    assert alleles == ("G", "A")
    assert list(samples) == ["X"]
    assert samples["X"][1] == 6
