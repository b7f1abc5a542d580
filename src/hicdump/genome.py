"""
Flattened genome-wide bin coordinates.

Every chromosome of a dataset, in the dataset's declared order, occupies a
contiguous run of bins in a single genome-wide coordinate space. The
whole-genome pseudo-chromosome is a marker only and occupies no bins.

"""
from __future__ import annotations

from collections.abc import Iterable

import numpy as np

from .models import CHR_ALL, Chromosome, Zoom, n_bins

__all__ = ["GenomeBins", "bin_offsets", "real_chromosomes"]


def real_chromosomes(chromosomes: Iterable[Chromosome]) -> list[Chromosome]:
    """Drop the whole-genome pseudo-chromosome, keeping the given order"""
    return [c for c in chromosomes if c.name != CHR_ALL]


def bin_offsets(chromosomes: Iterable[Chromosome], zoom: Zoom) -> dict[int, int]:
    """
    Offset of the first bin of each chromosome in the genome-wide bin space.

    Parameters
    ----------
    chromosomes : sequence of Chromosome
        Chromosomes in dataset order. Not re-sorted.
    zoom : Zoom
        Resolution whose bin size determines the number of bins per
        chromosome.

    Returns
    -------
    dict
        Chromosome index -> offset. The pseudo-chromosome has no entry.

    Examples
    --------
    >>> chroms = [Chromosome(0, "All", 3), Chromosome(1, "chr1", 1000),
    ...           Chromosome(2, "chr2", 2000)]
    >>> bin_offsets(chroms, Zoom(Unit.BP, 100))  # doctest: +SKIP
    {1: 0, 2: 11}

    """
    offsets = {}
    total = 0
    for chrom in real_chromosomes(chromosomes):
        offsets[chrom.index] = total
        total += n_bins(chrom.length, zoom.binsize)
    return offsets


class GenomeBins:
    """
    Bin offsets of a dataset at one resolution, with vectorized lookups from
    genome-wide bins back to their chromosomes.

    Parameters
    ----------
    chromosomes : sequence of Chromosome
        Chromosomes in dataset order, optionally including the
        pseudo-chromosome.
    zoom : Zoom
        Resolution.

    """

    def __init__(self, chromosomes: Iterable[Chromosome], zoom: Zoom):
        self.zoom = zoom
        self.chromosomes = real_chromosomes(chromosomes)
        self.offsets = bin_offsets(self.chromosomes, zoom)
        self.sizes = {
            c.index: n_bins(c.length, zoom.binsize) for c in self.chromosomes
        }
        self._chrom_ids = np.array([c.index for c in self.chromosomes], dtype=np.int64)
        self._starts = np.array(
            [self.offsets[c.index] for c in self.chromosomes], dtype=np.int64
        )
        self.n_bins = int(sum(self.sizes.values()))

    def __len__(self) -> int:
        return self.n_bins

    def offset(self, chrom: Chromosome) -> int:
        return self.offsets[chrom.index]

    def span(self, chrom: Chromosome) -> tuple[int, int]:
        lo = self.offsets[chrom.index]
        return lo, lo + self.sizes[chrom.index]

    def chrom_of_bin(self, bins) -> np.ndarray:
        """Chromosome index owning each genome-wide bin"""
        bins = np.asarray(bins, dtype=np.int64)
        if np.any(bins < 0) or np.any(bins >= self.n_bins):
            raise IndexError("bin id out of range of the genome-wide bin space")
        pos = np.searchsorted(self._starts, bins, side="right") - 1
        return self._chrom_ids[pos]

    def to_local(self, bins) -> np.ndarray:
        """Chromosome-local bin of each genome-wide bin"""
        bins = np.asarray(bins, dtype=np.int64)
        pos = np.searchsorted(self._starts, bins, side="right") - 1
        return bins - self._starts[pos]

    def __repr__(self) -> str:
        return (
            f"<GenomeBins {self.zoom}: {len(self.chromosomes)} chromosomes, "
            f"{self.n_bins} bins>"
        )
