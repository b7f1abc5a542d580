"""
Contact datasets stored as cooler HDF5 files.

A single-resolution ``.cool`` file holds one cooler at its root (or at the
group given by a ``file::/group`` URI). A multi-resolution ``.mcool`` file
holds one cooler per bin size under ``/resolutions/<binsize>``.

"""
from __future__ import annotations

import h5py
import numpy as np

from ._logging import get_logger
from .api import CombinedDataset, Dataset, Matrix, MatrixZoomData
from .errors import InvalidSelection
from .models import CHR_ALL, Chromosome, Unit, Zoom, make_records, n_bins
from .util import open_hdf5, parse_cooler_uri, partition

__all__ = ["CoolerDataset", "open_dataset"]

logger = get_logger(__name__)

MAGIC = "HDF5::Cooler"


def _is_cooler(grp: h5py.Group) -> bool:
    return grp.attrs.get("format", None) == MAGIC or all(
        name in grp.keys() for name in ("chroms", "bins", "pixels", "indexes")
    )


def _extent(grp: h5py.Group, chrom: Chromosome) -> tuple[int, int]:
    # chromosome indices start at 1; rows of chroms/ start at 0
    chrom_offset = grp["indexes/chrom_offset"]
    return int(chrom_offset[chrom.index - 1]), int(chrom_offset[chrom.index])


class CoolerZoomData(MatrixZoomData):
    """Records of one chromosome-pair block read from a cooler group."""

    def __init__(self, chrom1, chrom2, zoom, filepath, group, chunksize):
        super().__init__(chrom1, chrom2, zoom)
        self.filepath = filepath
        self.group = group
        self.chunksize = chunksize

    def contact_records(self, chunksize=None):
        if chunksize is None or chunksize <= 0:
            chunksize = self.chunksize
        with open_hdf5(self.filepath) as h5:
            grp = h5[self.group]
            i0, i1 = _extent(grp, self.chrom1)
            j0, j1 = _extent(grp, self.chrom2)
            bin1_offset = grp["indexes/bin1_offset"]
            lo, hi = int(bin1_offset[i0]), int(bin1_offset[i1])

            pixels = grp["pixels"]
            for p0, p1 in partition(lo, hi, chunksize):
                bin1 = pixels["bin1_id"][p0:p1]
                bin2 = pixels["bin2_id"][p0:p1]
                count = pixels["count"][p0:p1]
                mask = (bin2 >= j0) & (bin2 < j1)
                if not mask.any():
                    continue
                yield make_records(bin1[mask] - i0, bin2[mask] - j0, count[mask])


class CoolerDataset(Dataset):
    """
    Read a ``.cool`` or ``.mcool`` file.

    Parameters
    ----------
    uri : str
        Path to the file, optionally followed by ``::`` and the group path
        of a single cooler.
    chunksize : int, optional
        Number of pixels read from disk at one time.

    Notes
    -----
    Normalization vectors are read from the ``bins`` column named after the
    normalization type (``KR``, ``VC``, ``VC_SQRT``, ...), stored in divisive
    form as written by hic2cool and the 4DN data portal. Fragment
    resolutions are never available.

    """

    def __init__(self, uri: str, chunksize: int = 1_000_000):
        super().__init__()
        self.uri = uri
        self.filepath, group_path = parse_cooler_uri(uri)
        self.chunksize = chunksize
        if not h5py.is_hdf5(self.filepath):
            raise InvalidSelection(f"'{self.filepath}' is not an HDF5 file.")

        self._groups = {}
        with open_hdf5(self.filepath) as h5:
            root = h5[group_path]
            if "resolutions" in root:
                for key in root["resolutions"]:
                    grp = root["resolutions"][key]
                    self._groups[int(key)] = grp.name
            elif _is_cooler(root):
                self._groups[int(root.attrs["bin-size"])] = root.name
            if not self._groups:
                raise InvalidSelection(f"No cooler found at: {uri}")

            coarsest = h5[self._groups[max(self._groups)]]
            names = [
                n.decode() if isinstance(n, bytes) else n
                for n in coarsest["chroms/name"][:]
            ]
            lengths = coarsest["chroms/length"][:]

        chroms = [
            Chromosome(i + 1, str(name), int(length))
            for i, (name, length) in enumerate(zip(names, lengths))
        ]
        genome_length = sum(c.length for c in chroms)
        self._chromosomes = [Chromosome(0, CHR_ALL, genome_length // 1000)] + chroms
        logger.debug(
            f"Opened {uri}: {len(chroms)} chromosomes, "
            f"resolutions {sorted(self._groups)}"
        )

    @property
    def chromosomes(self):
        return list(self._chromosomes)

    def zooms(self, unit=Unit.BP):
        if unit != Unit.BP:
            return []
        return [Zoom(Unit.BP, b) for b in sorted(self._groups, reverse=True)]

    def _has_pixels(self, chrom1, chrom2) -> bool:
        group = self._groups[max(self._groups)]
        with open_hdf5(self.filepath) as h5:
            grp = h5[group]
            i0, i1 = _extent(grp, chrom1)
            j0, j1 = _extent(grp, chrom2)
            bin1_offset = grp["indexes/bin1_offset"]
            lo, hi = int(bin1_offset[i0]), int(bin1_offset[i1])
            bin2_id = grp["pixels/bin2_id"]
            for p0, p1 in partition(lo, hi, self.chunksize):
                bin2 = bin2_id[p0:p1]
                if np.any((bin2 >= j0) & (bin2 < j1)):
                    return True
        return False

    def get_matrix(self, chrom1, chrom2):
        if chrom1.name == CHR_ALL or chrom2.name == CHR_ALL:
            return None
        if not self._has_pixels(chrom1, chrom2):
            return None

        def _load(zoom):
            if zoom.unit != Unit.BP or zoom.binsize not in self._groups:
                return None
            return CoolerZoomData(
                chrom1,
                chrom2,
                zoom,
                self.filepath,
                self._groups[zoom.binsize],
                self.chunksize,
            )

        return Matrix(chrom1, chrom2, _load)

    def _load_norm_vector(self, chrom, zoom, norm):
        group = self._groups.get(zoom.binsize) if zoom.unit == Unit.BP else None
        if group is None:
            return None
        with open_hdf5(self.filepath) as h5:
            grp = h5[group]
            if norm.value not in grp["bins"]:
                return None
            i0, i1 = _extent(grp, chrom)
            stored = grp["bins"][norm.value][i0:i1].astype(float)

        # stored vectors have ceil(length / binsize) entries
        vector = np.full(n_bins(chrom.length, zoom.binsize), np.nan)
        size = min(len(stored), len(vector))
        vector[:size] = stored[:size]
        return vector

    def __repr__(self) -> str:
        return f'<CoolerDataset "{self.uri}">'


def open_dataset(paths, chunksize: int = 1_000_000) -> Dataset:
    """
    Open one or more dataset files. Several files are combined into a single
    dataset.

    """
    if isinstance(paths, str):
        paths = [paths]
    paths = list(paths)
    if not paths:
        raise InvalidSelection("At least one dataset path is required.")
    datasets = [CoolerDataset(p, chunksize=chunksize) for p in paths]
    if len(datasets) == 1:
        return datasets[0]
    return CombinedDataset(datasets)
