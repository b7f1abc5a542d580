"""
Serialization of dump results.

Text output is tab-separated for records and one value per line for
vectors. Writers end lines with a bare newline, which the text streams
opened by :py:func:`open_output` translate to the platform line
separator. Binary output is little-endian:

* records: ``int32 n`` followed by ``n`` triples of
  ``(int32 x, int32 y, float32 value)``;
* dense matrices: ``int32 rows, int32 cols`` followed by the values in
  row-major order as ``float32``.

"""
from __future__ import annotations

import gzip
import sys
from collections.abc import Iterable
from contextlib import contextmanager

import numpy as np
import pandas as pd

__all__ = [
    "RECORD_DTYPE",
    "center_vector",
    "open_output",
    "write_dense",
    "write_norm_bundle",
    "write_records",
    "write_records_binary",
    "write_vector",
]

RECORD_DTYPE = np.dtype([("x", "<i4"), ("y", "<i4"), ("value", "<f4")])

NA_REP = "NaN"


@contextmanager
def open_output(path: str | None = None, binary: bool = False):
    """
    Open the destination of a dump.

    ``None`` or ``"-"`` selects standard output, which is flushed but not
    closed. A ``.gz`` extension writes through gzip. Any other path is
    created or truncated, and closed on exit whether or not the body
    raised.

    """
    if path is None or path == "-":
        f = sys.stdout.buffer if binary else sys.stdout
        try:
            yield f
        finally:
            f.flush()
        return

    if path.endswith(".gz"):
        f = gzip.open(path, "wb" if binary else "wt")
    else:
        f = open(path, "wb" if binary else "w")
    try:
        yield f
    finally:
        f.close()


def write_records(f, chunks: Iterable[pd.DataFrame]) -> int:
    """
    Write record chunks as ``x<TAB>y<TAB>value`` lines.

    Each chunk must have three columns in that order. Returns the number of
    lines written.

    """
    n = 0
    for chunk in chunks:
        chunk.to_csv(
            f, sep="\t", index=False, header=False, na_rep=NA_REP, lineterminator="\n"
        )
        n += len(chunk)
    return n


def write_records_binary(f, records: pd.DataFrame) -> None:
    """Write a record frame ``(x, y, value)`` as a count-prefixed binary block"""
    out = np.empty(len(records), dtype=RECORD_DTYPE)
    out["x"] = records.iloc[:, 0].to_numpy()
    out["y"] = records.iloc[:, 1].to_numpy()
    out["value"] = records.iloc[:, 2].to_numpy()
    f.write(np.array([len(out)], dtype="<i4").tobytes())
    f.write(out.tobytes())


def write_dense(f, matrix, binary: bool = False) -> None:
    matrix = np.asarray(matrix, dtype=np.float64)
    rows, cols = matrix.shape
    if binary:
        f.write(np.array([rows, cols], dtype="<i4").tobytes())
        f.write(matrix.astype("<f4").tobytes(order="C"))
    else:
        pd.DataFrame(matrix).to_csv(
            f, sep=" ", index=False, header=False, na_rep=NA_REP, lineterminator="\n"
        )


def center_vector(values) -> np.ndarray:
    """
    Subtract the mean of the non-NaN entries from every entry. NaN entries
    stay NaN. An all-NaN vector is returned unchanged.

    """
    values = np.asarray(values, dtype=np.float64)
    finite = ~np.isnan(values)
    if not finite.any():
        return values.copy()
    return values - values[finite].mean()


def write_vector(f, values, center: bool = False) -> None:
    values = np.asarray(values, dtype=np.float64)
    if center:
        values = center_vector(values)
    pd.Series(values).to_csv(
        f, index=False, header=False, na_rep=NA_REP, lineterminator="\n"
    )


def write_norm_bundle(f, binsize: int, vector, profile) -> None:
    """
    Write a genome-wide normalization vector and its expected-value profile
    preceded by a ``binsize<TAB>len(vector)<TAB>len(profile)`` header.

    """
    vector = np.asarray(vector, dtype=np.float64)
    profile = np.asarray(profile, dtype=np.float64)
    f.write(f"{binsize}\t{len(vector)}\t{len(profile)}\n")
    write_vector(f, vector)
    write_vector(f, profile)
