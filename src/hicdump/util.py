from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import h5py
import numpy as np

__all__ = ["mad", "open_hdf5", "parse_cooler_uri", "partition"]


def partition(start: int, stop: int, step: int) -> Iterator[tuple[int, int]]:
    """Partition an integer interval into equally-sized subintervals.
    Like builtin :py:func:`range`, but yields pairs of end points.

    Examples
    --------
    >>> for lo, hi in partition(0, 9, 2):
    ...     print(lo, hi)
    0 2
    2 4
    4 6
    6 8
    8 9

    """
    return ((i, min(i + step, stop)) for i in range(start, stop, step))


def parse_cooler_uri(s: str) -> tuple[str, str]:
    """
    Parse a Cooler URI string

    e.g. /path/to/mycoolers.mcool::/resolutions/10000

    """
    parts = s.split("::")
    if len(parts) == 1:
        file_path, group_path = parts[0], "/"
    elif len(parts) == 2:
        file_path, group_path = parts
        if not group_path.startswith("/"):
            group_path = "/" + group_path
    else:
        raise ValueError("Invalid Cooler URI string")
    return file_path, group_path


def mad(data, axis=None):
    return np.median(np.abs(data - np.median(data, axis)), axis)


@contextmanager
def open_hdf5(fp, *args, **kwargs):
    """
    Context manager like ``h5py.File`` opened read-only, but accepts already
    open HDF5 file handles which do not get closed on teardown.

    Parameters
    ----------
    fp : str or ``h5py.File`` object
        If an open file object is provided, it passes through unchanged.
        If a filepath is passed, the context manager will close the file on
        tear down.

    """
    own_fh = isinstance(fp, str)
    fh = h5py.File(fp, "r", *args, **kwargs) if own_fh else fp
    try:
        yield fh
    finally:
        if own_fh:
            fh.close()
