"""
Application of per-bin normalization vectors to sparse contact records.

Vectors are divisive: a balanced value is ``count / (v[x] * v[y])``. A bin
whose vector entry is zero, negative or NaN cannot be normalized and every
cell touching it is reported as NaN, so "no contacts" stays distinguishable
from "unnormalizable".

"""
from __future__ import annotations

import numpy as np
import pandas as pd

__all__ = [
    "apply_normalization",
    "balance_values",
    "is_valid",
    "observed_over_expected",
]


def is_valid(vector) -> np.ndarray:
    """Mask of vector entries usable as divisors"""
    vector = np.asarray(vector, dtype=np.float64)
    with np.errstate(invalid="ignore"):
        return np.isfinite(vector) & (vector > 0)


def _lookup(vector, bins):
    out = np.full(len(bins), np.nan)
    inside = (bins >= 0) & (bins < len(vector))
    out[inside] = vector[bins[inside]]
    return out


def balance_values(bin1, bin2, counts, vector1, vector2=None) -> np.ndarray:
    """
    Balance raw counts with a divisive normalization vector.

    Parameters
    ----------
    bin1, bin2 : 1D array of int
        Row and column bins of each record, in the coordinates the vectors
        are indexed by.
    counts : 1D array
        Raw counts.
    vector1 : 1D array
        Normalization vector for the row axis.
    vector2 : 1D array, optional
        Normalization vector for the column axis. Defaults to ``vector1``.

    Returns
    -------
    1D array of float
        New array aligned with ``counts``; NaN where either vector entry is
        not finite and positive or the bin lies past the end of the vector.

    """
    vector1 = np.asarray(vector1, dtype=np.float64)
    vector2 = vector1 if vector2 is None else np.asarray(vector2, dtype=np.float64)
    bin1 = np.asarray(bin1, dtype=np.int64)
    bin2 = np.asarray(bin2, dtype=np.int64)
    counts = np.asarray(counts, dtype=np.float64)

    v1 = _lookup(vector1, bin1)
    v2 = _lookup(vector2, bin2)
    ok = is_valid(v1) & is_valid(v2)

    out = np.full(len(counts), np.nan)
    out[ok] = counts[ok] / (v1[ok] * v2[ok])
    return out


def apply_normalization(records: pd.DataFrame, vector1, vector2=None) -> pd.DataFrame:
    """
    Balanced copy of a record chunk.

    Returns a new frame with columns ``bin1_id``, ``bin2_id`` and ``value``.
    The input frame is left untouched.

    """
    values = balance_values(
        records["bin1_id"].to_numpy(),
        records["bin2_id"].to_numpy(),
        records["count"].to_numpy(),
        vector1,
        vector2,
    )
    return pd.DataFrame(
        {
            "bin1_id": records["bin1_id"].to_numpy(),
            "bin2_id": records["bin2_id"].to_numpy(),
            "value": values,
        },
        columns=["bin1_id", "bin2_id", "value"],
    )


def observed_over_expected(records: pd.DataFrame, vector, expected) -> pd.DataFrame:
    """
    Observed/expected ratio of intra-chromosomal records.

    ``expected`` is the expected-value vector of the chromosome indexed by
    distance in bins. Distances past its end, and invalid bins, yield NaN.

    """
    out = apply_normalization(records, vector)
    expected = np.asarray(expected, dtype=np.float64)
    dist = np.abs(out["bin1_id"].to_numpy() - out["bin2_id"].to_numpy())

    denom = np.full(len(dist), np.nan)
    inside = dist < len(expected)
    denom[inside] = expected[dist[inside]]

    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = out["value"].to_numpy() / denom
    ratio[~np.isfinite(ratio)] = np.nan
    out["value"] = ratio
    return out
