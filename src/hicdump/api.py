from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator

import numpy as np
import pandas as pd

from ._logging import get_logger
from .errors import InvalidSelection, MissingResolution, UnknownChromosome
from .expected import ExpectedValueCalculation, ExpectedValueFunction
from .genome import real_chromosomes
from .matrix import eigenvector, oe_matrix, pearson_matrix
from .models import (
    CHR_ALL,
    Chromosome,
    NormalizationType,
    Unit,
    Zoom,
    empty_records,
    make_records,
    n_bins,
)
from .normalize import balance_values
from .util import partition

__all__ = [
    "CombinedDataset",
    "Dataset",
    "Matrix",
    "MatrixZoomData",
    "MemoryDataset",
]

logger = get_logger(__name__)


class MatrixZoomData(ABC):
    """
    The sparse records of one chromosome-pair block at one resolution.
    Bin ids are local to each chromosome.

    """

    def __init__(self, chrom1: Chromosome, chrom2: Chromosome, zoom: Zoom):
        self.chrom1 = chrom1
        self.chrom2 = chrom2
        self.zoom = zoom

    @abstractmethod
    def contact_records(self, chunksize: int | None = None) -> Iterator[pd.DataFrame]:
        """Iterate over record chunks with columns bin1_id, bin2_id, count"""

    def to_frame(self) -> pd.DataFrame:
        chunks = list(self.contact_records())
        if not chunks:
            return empty_records()
        return pd.concat(chunks, ignore_index=True)

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} {self.chrom1.name} x {self.chrom2.name} "
            f"{self.zoom}>"
        )


class Matrix:
    """
    All resolutions of one chromosome-pair block.

    Parameters
    ----------
    chrom1, chrom2 : Chromosome
    loader : callable
        ``loader(zoom) -> MatrixZoomData or None``. Called at most once per
        zoom.

    """

    def __init__(self, chrom1: Chromosome, chrom2: Chromosome, loader):
        self.chrom1 = chrom1
        self.chrom2 = chrom2
        self._loader = loader
        self._cache = {}

    def get_zoom_data(self, zoom: Zoom) -> MatrixZoomData | None:
        if zoom not in self._cache:
            self._cache[zoom] = self._loader(zoom)
        return self._cache[zoom]


class Dataset(ABC):
    """
    Read interface of a multi-resolution, multi-chromosome contact dataset.

    Subclasses provide the chromosome table, the available zoom levels,
    chromosome-pair blocks and stored normalization vectors. Expected values
    and eigenvectors are derived from those unless a subclass stores them.

    """

    def __init__(self):
        self._expected_cache = {}

    @property
    @abstractmethod
    def chromosomes(self) -> list[Chromosome]:
        """Chromosomes in dataset order, the pseudo-chromosome first"""

    @abstractmethod
    def zooms(self, unit: Unit = Unit.BP) -> list[Zoom]:
        """Available resolutions of a unit, finest bin size last"""

    @abstractmethod
    def get_matrix(self, chrom1: Chromosome, chrom2: Chromosome) -> Matrix | None:
        """Block of a chromosome pair, None if the pair holds no contacts"""

    def _load_norm_vector(self, chrom: Chromosome, zoom: Zoom, norm):
        return None

    def get_chromosome(self, name: str) -> Chromosome:
        for chrom in self.chromosomes:
            if chrom.name == name:
                return chrom
        raise UnknownChromosome(name, [c.name for c in self.chromosomes])

    def available_binsizes(self) -> dict[str, list[int]]:
        return {unit.value: [z.binsize for z in self.zooms(unit)] for unit in Unit}

    def has_zoom(self, zoom: Zoom) -> bool:
        return zoom in self.zooms(zoom.unit)

    def check_zoom(self, zoom: Zoom) -> None:
        if not self.has_zoom(zoom):
            raise MissingResolution(zoom, self.available_binsizes())

    def get_normalization_vector(
        self, chr_index: int, zoom: Zoom, norm
    ) -> np.ndarray | None:
        """
        Divisive normalization vector of a chromosome, or None if the dataset
        has none of that type. ``NONE`` yields ones.

        """
        norm = NormalizationType(norm)
        chrom = self._chromosome_by_index(chr_index)
        if norm == NormalizationType.NONE:
            return np.ones(n_bins(chrom.length, zoom.binsize))
        return self._load_norm_vector(chrom, zoom, norm)

    def get_expected_values(self, zoom: Zoom, norm) -> ExpectedValueFunction | None:
        """
        Expected values computed from the intra-chromosomal blocks,
        normalized with the chromosomes' own vectors. None if any needed
        vector is missing.

        """
        norm = NormalizationType(norm)
        key = (zoom, norm)
        cache = self._expected_cache
        if key in cache:
            return cache[key]

        estimator = ExpectedValueCalculation(self.chromosomes, zoom.binsize, norm)
        for chrom in real_chromosomes(self.chromosomes):
            matrix = self.get_matrix(chrom, chrom)
            zd = matrix.get_zoom_data(zoom) if matrix is not None else None
            if zd is None:
                continue
            vector = self.get_normalization_vector(chrom.index, zoom, norm)
            if vector is None:
                logger.warning(f"No {norm.value} vector for {chrom.name} at {zoom}")
                return None
            for chunk in zd.contact_records():
                bin1 = chunk["bin1_id"].to_numpy()
                bin2 = chunk["bin2_id"].to_numpy()
                values = balance_values(bin1, bin2, chunk["count"].to_numpy(), vector)
                estimator.add_distances(chrom.index, bin1, bin2, values)

        estimator.compute_density()
        cache[key] = result = estimator.to_function(zoom.unit)
        return result

    def get_eigenvector(
        self, chrom: Chromosome, zoom: Zoom, component: int, norm
    ) -> np.ndarray | None:
        """
        Eigenvector of the Pearson matrix of a chromosome, or None if the
        chromosome has no contacts, vector or expected values.

        """
        matrix = self.get_matrix(chrom, chrom)
        zd = matrix.get_zoom_data(zoom) if matrix is not None else None
        if zd is None:
            return None
        vector = self.get_normalization_vector(chrom.index, zoom, norm)
        expected = self.get_expected_values(zoom, norm)
        if vector is None or expected is None:
            return None
        oe = oe_matrix(
            zd.to_frame(),
            vector,
            expected.expected_vector(chrom.index),
            n_bins(chrom.length, zoom.binsize),
        )
        return eigenvector(pearson_matrix(oe), component)

    def _chromosome_by_index(self, chr_index: int) -> Chromosome:
        for chrom in self.chromosomes:
            if chrom.index == chr_index:
                return chrom
        raise UnknownChromosome(str(chr_index), [c.name for c in self.chromosomes])


class MemoryZoomData(MatrixZoomData):
    def __init__(self, chrom1, chrom2, zoom, records: pd.DataFrame):
        super().__init__(chrom1, chrom2, zoom)
        self.records = records

    def contact_records(self, chunksize=None):
        n = len(self.records)
        if chunksize is None or chunksize <= 0:
            chunksize = max(n, 1)
        for lo, hi in partition(0, n, chunksize):
            chunk = self.records.iloc[lo:hi]
            yield make_records(
                chunk["bin1_id"].to_numpy(),
                chunk["bin2_id"].to_numpy(),
                chunk["count"].to_numpy(),
            )


def _as_zoom(z) -> Zoom:
    if isinstance(z, Zoom):
        return z
    return Zoom(Unit.BP, int(z))


def _as_records(obj) -> pd.DataFrame:
    if isinstance(obj, pd.DataFrame):
        return make_records(obj["bin1_id"], obj["bin2_id"], obj["count"])
    obj = list(obj)
    if not obj:
        return empty_records()
    bin1, bin2, counts = zip(*obj)
    return make_records(bin1, bin2, counts)


class MemoryDataset(Dataset):
    """
    Dataset held in memory.

    Parameters
    ----------
    chromosomes : sequence of Chromosome or (name, length) pairs
        Chromosomes in dataset order. The whole-genome pseudo-chromosome is
        prepended at index 0 (length in kb) unless already present.
    blocks : dict
        ``(name1, name2, zoom) -> records``, where ``zoom`` is a Zoom or a
        bin size in bp and records are a DataFrame with ``bin1_id``,
        ``bin2_id``, ``count`` or a sequence of ``(x, y, count)`` triples.
        A pair is stored under one orientation only.
    norm_vectors : dict, optional
        ``(name, zoom, norm) -> vector``.
    expected : dict, optional
        ``(zoom, norm) -> ExpectedValueFunction``. Missing entries are
        computed.
    eigenvectors : dict, optional
        ``(name, zoom, norm) -> vector``. Missing entries are computed.
    zooms : sequence, optional
        Extra resolutions to advertise besides those of ``blocks``.

    """

    def __init__(
        self,
        chromosomes,
        blocks,
        norm_vectors=None,
        expected=None,
        eigenvectors=None,
        zooms=None,
    ):
        super().__init__()
        chroms = [
            c if isinstance(c, Chromosome) else Chromosome(i + 1, c[0], int(c[1]))
            for i, c in enumerate(chromosomes)
        ]
        if not chroms or chroms[0].name != CHR_ALL:
            genome_length = sum(c.length for c in chroms)
            chroms = [Chromosome(0, CHR_ALL, genome_length // 1000)] + chroms
        self._chromosomes = chroms

        self._blocks = {}
        for (name1, name2, zoom), records in blocks.items():
            self._blocks[name1, name2, _as_zoom(zoom)] = _as_records(records)

        self._norm_vectors = {
            (name, _as_zoom(zoom), NormalizationType(norm)): np.asarray(v, dtype=float)
            for (name, zoom, norm), v in (norm_vectors or {}).items()
        }
        self._expected = {
            (_as_zoom(zoom), NormalizationType(norm)): fn
            for (zoom, norm), fn in (expected or {}).items()
        }
        self._eigenvectors = {
            (name, _as_zoom(zoom), NormalizationType(norm)): np.asarray(v, dtype=float)
            for (name, zoom, norm), v in (eigenvectors or {}).items()
        }

        zoom_set = {key[2] for key in self._blocks}
        zoom_set.update(_as_zoom(z) for z in (zooms or []))
        self._zooms = zoom_set

    @property
    def chromosomes(self):
        return list(self._chromosomes)

    def zooms(self, unit=Unit.BP):
        return sorted(
            (z for z in self._zooms if z.unit == unit),
            key=lambda z: -z.binsize,
        )

    def get_matrix(self, chrom1, chrom2):
        pairs = {(n1, n2) for n1, n2, _ in self._blocks}
        if (chrom1.name, chrom2.name) not in pairs:
            return None

        def _load(zoom):
            records = self._blocks.get((chrom1.name, chrom2.name, zoom))
            if records is None:
                return None
            return MemoryZoomData(chrom1, chrom2, zoom, records)

        return Matrix(chrom1, chrom2, _load)

    def _load_norm_vector(self, chrom, zoom, norm):
        return self._norm_vectors.get((chrom.name, zoom, norm))

    def get_expected_values(self, zoom, norm):
        stored = self._expected.get((zoom, NormalizationType(norm)))
        if stored is not None:
            return stored
        return super().get_expected_values(zoom, norm)

    def get_eigenvector(self, chrom, zoom, component, norm):
        if component == 0:
            stored = self._eigenvectors.get((chrom.name, zoom, NormalizationType(norm)))
            if stored is not None:
                return stored
        return super().get_eigenvector(chrom, zoom, component, norm)

    def __repr__(self) -> str:
        return f"<MemoryDataset: {len(self._chromosomes) - 1} chromosomes>"


class CombinedZoomData(MatrixZoomData):
    def __init__(self, chrom1, chrom2, zoom, parts):
        super().__init__(chrom1, chrom2, zoom)
        self.parts = parts

    def contact_records(self, chunksize=None):
        for part in self.parts:
            yield from part.contact_records(chunksize)


class CombinedDataset(Dataset):
    """
    Several datasets over the same chromosomes read as one. Blocks are the
    concatenation of every member's records; no member's stored vectors
    carry over.

    """

    def __init__(self, datasets):
        super().__init__()
        self.datasets = list(datasets)
        if not self.datasets:
            raise InvalidSelection("No datasets to combine")
        names = [c.name for c in self.datasets[0].chromosomes]
        for ds in self.datasets[1:]:
            if [c.name for c in ds.chromosomes] != names:
                raise InvalidSelection(
                    f"Chromosomes of {ds!r} differ from those of {self.datasets[0]!r}"
                )

    @property
    def chromosomes(self):
        return self.datasets[0].chromosomes

    def zooms(self, unit=Unit.BP):
        common = set(self.datasets[0].zooms(unit))
        for ds in self.datasets[1:]:
            common &= set(ds.zooms(unit))
        return sorted(common, key=lambda z: -z.binsize)

    def get_matrix(self, chrom1, chrom2):
        members = []
        for ds in self.datasets:
            matrix = ds.get_matrix(
                ds.get_chromosome(chrom1.name), ds.get_chromosome(chrom2.name)
            )
            if matrix is not None:
                members.append(matrix)
        if not members:
            return None

        def _load(zoom):
            parts = [m.get_zoom_data(zoom) for m in members]
            parts = [p for p in parts if p is not None]
            if not parts:
                return None
            return CombinedZoomData(chrom1, chrom2, zoom, parts)

        return Matrix(chrom1, chrom2, _load)

    def __repr__(self) -> str:
        return f"<CombinedDataset: {len(self.datasets)} datasets>"
