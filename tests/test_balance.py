import numpy as np
import pytest

from hicdump.balance import ConvergenceWarning, compute_norm_vector, coverage
from hicdump.genome import GenomeBins
from hicdump.matrix import dense_symmetric
from hicdump.models import CHR_ALL, Chromosome, NormalizationType, Unit, Zoom, make_records
from hicdump.normalize import balance_values


def _random_records(n, seed=0):
    rng = np.random.default_rng(seed)
    ii, jj = np.triu_indices(n)
    counts = rng.integers(1, 100, size=len(ii)).astype(float)
    return make_records(ii, jj, counts)


def test_coverage():
    cov = coverage([0, 0, 1], [0, 1, 2], [2, 3, 4], 4)
    np.testing.assert_array_equal(cov, [5, 7, 4, 0])


def test_none_vector_is_ones():
    records = make_records([0], [1], [3])
    np.testing.assert_array_equal(
        compute_norm_vector(records, 3, NormalizationType.NONE), [1, 1, 1]
    )


@pytest.mark.parametrize("norm", ["VC", "GW_VC"])
def test_vc_vector(norm):
    records = make_records([0, 0, 1], [0, 1, 2], [2, 3, 4])
    vector = compute_norm_vector(records, 4, norm)
    assert np.isnan(vector[3])
    assert vector[0] / vector[1] == pytest.approx(5 / 7)
    assert vector[2] / vector[1] == pytest.approx(4 / 7)


def test_vc_sqrt_vector():
    records = make_records([0, 0, 1], [0, 1, 2], [2, 3, 4])
    vector = compute_norm_vector(records, 4, "VC_SQRT")
    assert vector[0] / vector[1] == pytest.approx(np.sqrt(5 / 7))


@pytest.mark.parametrize("norm", ["VC", "VC_SQRT", "KR", "GW_KR"])
def test_vector_preserves_total(norm):
    records = _random_records(12)
    vector = compute_norm_vector(records, 12, norm)
    values = balance_values(
        records["bin1_id"], records["bin2_id"], records["count"], vector
    )
    assert np.nansum(values) == pytest.approx(records["count"].sum())


def test_kr_vector_equalizes_marginals():
    n = 10
    records = _random_records(n, seed=1)
    vector = compute_norm_vector(records, n, "KR", tol=1e-10, max_iters=1000)
    assert np.all(np.isfinite(vector))

    values = balance_values(
        records["bin1_id"], records["bin2_id"], records["count"], vector
    )
    mat = dense_symmetric(records["bin1_id"], records["bin2_id"], values, n)
    marg = mat.sum(axis=0)
    np.testing.assert_allclose(marg, marg.mean(), rtol=1e-3)


def test_kr_vector_masks_empty_bins():
    records = make_records([0, 0, 1], [0, 1, 1], [5, 2, 5])
    vector = compute_norm_vector(records, 3, "KR")
    assert np.all(np.isfinite(vector[:2]))
    assert np.isnan(vector[2])


def test_kr_convergence_warning():
    records = _random_records(8, seed=2)
    with pytest.warns(ConvergenceWarning):
        compute_norm_vector(records, 8, "KR", max_iters=1)


def test_inter_vector_ignores_cis():
    chroms = [
        Chromosome(0, CHR_ALL, 3),
        Chromosome(1, "chr1", 1000),
        Chromosome(2, "chr2", 2000),
    ]
    genome = GenomeBins(chroms, Zoom(Unit.BP, 100))
    records = make_records([0, 0, 1], [0, 11, 12], [5, 2, 4])
    vector = compute_norm_vector(records, len(genome), "INTER_VC", genome=genome)
    assert vector[0] / vector[1] == pytest.approx(2 / 4)
    assert vector[11] / vector[12] == pytest.approx(2 / 4)
    assert np.isnan(vector[2])

    with pytest.raises(ValueError):
        compute_norm_vector(records, len(genome), "INTER_KR")
