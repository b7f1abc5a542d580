import warnings

import numpy as np

from ._logging import get_logger
from .models import NormalizationType
from .normalize import balance_values
from .util import mad

__all__ = ["ConvergenceWarning", "compute_norm_vector", "coverage"]

logger = get_logger(__name__)


class ConvergenceWarning(UserWarning):
    pass


def _marginalize(bin1, bin2, data, n_bins):
    # symmetric marginal: off-diagonal records count towards both bins
    offdiag = bin1 != bin2
    return np.bincount(bin1, weights=data, minlength=n_bins) + np.bincount(
        bin2[offdiag], weights=data[offdiag], minlength=n_bins
    )


def _zero_cis(genome, bin1, bin2, data):
    mask = genome.chrom_of_bin(bin1) == genome.chrom_of_bin(bin2)
    data = data.copy()
    data[mask] = 0
    return data


def _mad_max_filter(marg, mad_max):
    nzmarg = marg[marg > 0]
    if not len(nzmarg):
        return np.zeros(len(marg), dtype=bool)
    log_nzmarg = np.log(nzmarg)
    cutoff = np.exp(np.median(log_nzmarg) - mad_max * mad(log_nzmarg))
    return marg < cutoff


def coverage(bin1, bin2, data, n_bins):
    """Row sums of the symmetric matrix described by upper-triangle records"""
    return _marginalize(
        np.asarray(bin1, dtype=np.int64),
        np.asarray(bin2, dtype=np.int64),
        np.asarray(data, dtype=np.float64),
        n_bins,
    )


def _balance_ic(bin1, bin2, data, n_bins, tol, max_iters, mad_max):
    bias = np.ones(n_bins, dtype=float)
    marg = _marginalize(bin1, bin2, data, n_bins)
    bias[marg == 0] = 0
    if mad_max > 0:
        bias[_mad_max_filter(marg, mad_max)] = 0

    var = np.nan
    for _ in range(max_iters):
        marg = _marginalize(bin1, bin2, bias[bin1] * bias[bin2] * data, n_bins)

        nzmarg = marg[marg != 0]
        if not len(nzmarg):
            bias[:] = np.nan
            var = 0.0
            break

        marg = marg / nzmarg.mean()
        marg[marg == 0] = 1
        bias /= marg

        var = (nzmarg / nzmarg.mean()).var()
        logger.debug(f"variance is {var}")
        if var < tol:
            break
    else:
        warnings.warn(
            "Iteration limit reached without convergence.", ConvergenceWarning
        )

    bias[bias == 0] = np.nan
    return bias, var


def compute_norm_vector(
    records,
    n_bins,
    norm,
    genome=None,
    tol=1e-5,
    max_iters=200,
    mad_max=0,
):
    """
    Compute a divisive normalization vector from genome-wide sparse records.

    Parameters
    ----------
    records : pandas.DataFrame
        Records with columns ``bin1_id``, ``bin2_id`` and ``count`` in
        genome-wide bin coordinates, upper triangle only.
    n_bins : int
        Total number of genome-wide bins (length of the output vector).
    norm : NormalizationType
        Normalization type. ``VC`` variants yield the coverage, ``VC_SQRT``
        its square root and ``KR`` variants a matrix balancing vector.
        ``INTER_`` variants ignore intra-chromosomal records.
    genome : GenomeBins, optional
        Required by the ``INTER_`` variants to tell cis from trans records.
    tol : float, optional
        Convergence criterion of the balancing: variance of the normalized
        marginal sum vector.
    max_iters : int, optional
        Iteration limit of the balancing.
    mad_max : int, optional
        Before balancing, drop bins whose log marginal sum is more than
        ``mad_max`` median absolute deviations below the median.

    Returns
    -------
    1D array of length ``n_bins``
        Balanced values are ``count / (v[x] * v[y])``. Bins that cannot be
        normalized are NaN. Vectors other than ``NONE`` are rescaled so that
        the balanced counts sum to the raw counts.

    """
    norm = NormalizationType(norm)
    if norm == NormalizationType.NONE:
        return np.ones(n_bins, dtype=float)

    bin1 = records["bin1_id"].to_numpy().astype(np.int64, copy=False)
    bin2 = records["bin2_id"].to_numpy().astype(np.int64, copy=False)
    data = records["count"].to_numpy().astype(np.float64)

    if norm.is_inter:
        if genome is None:
            raise ValueError(f"{norm.value} requires the genome bin layout")
        data = _zero_cis(genome, bin1, bin2, data)

    logger.info(f"Computing {norm.value} vector over {n_bins} bins")
    if norm.is_vc:
        vector = _marginalize(bin1, bin2, data, n_bins)
        if norm == NormalizationType.VC_SQRT:
            vector = np.sqrt(vector)
        vector[vector == 0] = np.nan
    else:
        bias, var = _balance_ic(bin1, bin2, data, n_bins, tol, max_iters, mad_max)
        logger.info(f"Balancing finished with variance {var}")
        with np.errstate(divide="ignore"):
            vector = 1.0 / bias

    values = balance_values(bin1, bin2, data, vector)
    ok = np.isfinite(values)
    norm_sum = values[ok].sum()
    raw_sum = data[ok].sum()
    if norm_sum > 0 and raw_sum > 0:
        vector = vector * np.sqrt(norm_sum / raw_sum)

    return vector
