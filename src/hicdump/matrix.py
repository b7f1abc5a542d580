"""
Dense transforms of a single intra-chromosomal block: observed/expected,
Pearson correlation and its leading eigenvectors.

"""
import numpy as np
import scipy.linalg
from scipy.sparse import coo_matrix

from .normalize import observed_over_expected

__all__ = ["dense_symmetric", "eigenvector", "oe_matrix", "pearson_matrix"]


def dense_symmetric(bin1, bin2, values, n):
    """
    Dense ``n x n`` matrix from upper-triangle records, reflecting
    off-diagonal elements into the lower triangle. Non-finite values and
    bins outside the matrix are dropped.

    """
    bin1 = np.asarray(bin1, dtype=np.int64)
    bin2 = np.asarray(bin2, dtype=np.int64)
    values = np.asarray(values, dtype=np.float64)

    keep = np.isfinite(values) & (bin1 < n) & (bin2 < n)
    bin1, bin2, values = bin1[keep], bin2[keep], values[keep]

    to_duplex = bin1 != bin2
    rows = np.r_[bin1, bin2[to_duplex]]
    cols = np.r_[bin2, bin1[to_duplex]]
    data = np.r_[values, values[to_duplex]]
    return coo_matrix((data, (rows, cols)), shape=(n, n)).toarray()


def oe_matrix(records, vector, expected, n):
    """
    Dense observed/expected matrix of an intra-chromosomal block.

    Parameters
    ----------
    records : DataFrame
        Chromosome-local records with ``bin1_id``, ``bin2_id``, ``count``.
    vector : 1D array
        Normalization vector of the chromosome.
    expected : 1D array
        Expected values of the chromosome indexed by distance.
    n : int
        Number of bins of the chromosome.

    Returns
    -------
    2D array
        Cells that could not be normalized hold 0.

    """
    oe = observed_over_expected(records, vector, expected)
    return dense_symmetric(oe["bin1_id"], oe["bin2_id"], oe["value"], n)


def pearson_matrix(oe):
    """
    Pearson correlation between the rows of an O/E matrix. Rows without
    signal are NaN.

    """
    oe = np.asarray(oe, dtype=np.float64)
    out = np.full(oe.shape, np.nan)
    mask = np.abs(oe).sum(axis=0) > 0
    if mask.sum() < 2:
        return out
    with np.errstate(invalid="ignore", divide="ignore"):
        corr = np.corrcoef(oe[mask, :][:, mask])
    out[np.ix_(mask, mask)] = corr
    return out


def eigenvector(pearson, component=0):
    """
    Eigenvector of a Pearson matrix.

    Parameters
    ----------
    pearson : 2D array
        Symmetric correlation matrix, NaN on masked rows and columns.
    component : int, optional
        Rank of the eigenvector by decreasing absolute eigenvalue.

    Returns
    -------
    1D array
        NaN on masked bins, and everywhere when fewer than
        ``component + 1`` bins are usable.

    """
    pearson = np.asarray(pearson, dtype=np.float64)
    n = pearson.shape[0]
    out = np.full(n, np.nan)

    mask = np.isfinite(np.diag(pearson))
    if mask.sum() <= component:
        return out

    sub = pearson[mask, :][:, mask]
    sub[~np.isfinite(sub)] = 0
    eigvals, eigvecs = scipy.linalg.eigh(sub)
    order = np.argsort(-np.abs(eigvals))
    out[mask] = eigvecs[:, order[component]]
    return out
