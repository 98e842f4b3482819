import numpy as np
import pytest

from snpgl.discovery import alternate_likelihood_sums, determine_alternate_alleles
from snpgl.genotypes import pair_index
from snpgl.likelihoods import compute_genotype_likelihoods
from snpgl.models import Allele, GenotypeLikelihoods, Pileup, PileupElement


def synthetic(values: dict, floor: float = -20.0) -> GenotypeLikelihoods:
    v = np.full(10, floor)
    for (i, j), x in values.items():
        v[pair_index(i, j)] = x
    return GenotypeLikelihoods(log10=v, n_good_bases=1)


def from_bases(bases: str) -> GenotypeLikelihoods:
    p = Pileup.of([PileupElement(base=b, qual=30, read_name=f"r{i}", alignment_start=i) for i, b in enumerate(bases)])
    gl = compute_genotype_likelihoods(p)
    assert gl is not None
    return gl


def test_all_reference_samples_give_no_alternates():
    gls = [from_bases("AAAAAAAA"), from_bases("AAAA")]
    assert determine_alternate_alleles("A", gls) == []


def test_hom_alt_sample_proposes_alt():
    assert determine_alternate_alleles("A", [from_bases("G" * 10)]) == [Allele("G")]


def test_hom_alt_gap_is_counted_once():
    sums = alternate_likelihood_sums("A", [synthetic({(0, 0): -3.0, (2, 2): 0.0})])
    np.testing.assert_allclose(sums, [0.0, 0.0, 3.0, 0.0])


def test_het_with_two_non_reference_bases_credits_both():
    sums = alternate_likelihood_sums("A", [synthetic({(0, 0): -5.0, (1, 2): 0.0})])
    np.testing.assert_allclose(sums, [0.0, 5.0, 5.0, 0.0])
    alts = determine_alternate_alleles("A", [synthetic({(0, 0): -5.0, (1, 2): 0.0})])
    assert [a.base for a in alts] == ["C", "G"]


def test_het_with_reference_credits_only_alt():
    sums = alternate_likelihood_sums("T", [synthetic({(3, 3): -2.0, (1, 3): 0.0})])
    np.testing.assert_allclose(sums, [0.0, 2.0, 0.0, 0.0])


def test_sums_accumulate_across_samples_in_base_order():
    gls = [
        synthetic({(0, 0): -1.0, (3, 3): 0.0}),
        synthetic({(0, 0): -2.0, (0, 1): 0.0}),
        synthetic({(0, 0): 0.0}),
    ]
    alts = determine_alternate_alleles("A", gls)
    assert [a.base for a in alts] == ["C", "T"]


def test_tie_with_reference_contributes_nothing():
    # A/A (slot 0) ties with G/G; argmax picks the first slot, so the gap is 0
    gl = synthetic({(0, 0): 0.0, (2, 2): 0.0})
    sums = alternate_likelihood_sums("G", [gl])
    np.testing.assert_array_equal(sums, np.zeros(4))
    assert determine_alternate_alleles("G", [gl]) == []


def test_sums_are_fresh_per_call():
    gl = synthetic({(0, 0): -3.0, (2, 2): 0.0})
    first = alternate_likelihood_sums("A", [gl])
    second = alternate_likelihood_sums("A", [gl])
    np.testing.assert_array_equal(first, second)


def test_empty_sample_list():
    assert determine_alternate_alleles("C", []) == []


def test_invalid_reference_raises():
    with pytest.raises(ValueError):
        determine_alternate_alleles("N", [])
