"""
Distance-decay (expected value) profiles.

The estimator accumulates normalized contact values by genomic distance (in
bins) and divides each distance's total by the number of bin pairs at that
distance the genome could hold. Sparse tails are smoothed by growing a
window around each distance until it covers enough contacts.

"""
from __future__ import annotations

from collections.abc import Iterable

import numpy as np
import pandas as pd

from ._logging import get_logger
from .genome import GenomeBins, real_chromosomes
from .models import Chromosome, NormalizationType, Unit, n_bins

__all__ = [
    "ExpectedValueCalculation",
    "ExpectedValueFunction",
    "integrate_expected",
]

logger = get_logger(__name__)


class ExpectedValueFunction:
    """
    Expected contact value as a function of distance.

    Parameters
    ----------
    density : 1D array
        Genome-wide averaged profile, indexed by distance in bins.
    chr_scale_factors : dict, optional
        Chromosome index -> factor dividing the genome-wide profile to give
        the chromosome's own expected values. Chromosomes without a factor
        use the profile unchanged.
    binsize : int
    norm : NormalizationType
    unit : Unit

    """

    def __init__(
        self,
        density,
        chr_scale_factors=None,
        binsize=None,
        norm=NormalizationType.NONE,
        unit=Unit.BP,
    ):
        self.density = np.asarray(density, dtype=np.float64)
        self.chr_scale_factors = dict(chr_scale_factors or {})
        self.binsize = binsize
        self.norm = NormalizationType(norm)
        self.unit = unit

    @property
    def length(self) -> int:
        return len(self.density)

    @property
    def expected_values(self) -> np.ndarray:
        return self.density

    def expected_vector(self, chr_index: int) -> np.ndarray:
        factor = self.chr_scale_factors.get(chr_index, 1.0)
        return self.density / factor

    def expected_value(self, chr_index: int, distance: int) -> float:
        return float(self.density[distance] / self.chr_scale_factors.get(chr_index, 1.0))

    def __repr__(self) -> str:
        return (
            f"<ExpectedValueFunction {self.unit.value}_{self.binsize} "
            f"{self.norm.value}: {self.length} distances>"
        )


class ExpectedValueCalculation:
    """
    Accumulates (chromosome, distance, value) contributions and computes
    the averaged density profile.

    Parameters
    ----------
    chromosomes : sequence of Chromosome
        Chromosomes that may receive contributions. The whole-genome
        pseudo-chromosome is ignored.
    binsize : int
        Bin size of the contributing records.
    norm : NormalizationType
        Normalization the contributed values carry. Recorded on the result.
    min_count : float, optional
        Total value a smoothing window must cover before it stops growing.

    """

    def __init__(
        self,
        chromosomes: Iterable[Chromosome],
        binsize: int,
        norm=NormalizationType.NONE,
        min_count: float = 400,
    ):
        self.chromosomes = {c.index: c for c in real_chromosomes(chromosomes)}
        self.binsize = binsize
        self.norm = NormalizationType(norm)
        self.min_count = min_count

        lengths = [c.length for c in self.chromosomes.values()]
        self.n_bins = n_bins(max(lengths), binsize) if lengths else 0
        self.actual_distances = np.zeros(self.n_bins)
        self.chromosome_counts = {idx: 0.0 for idx in self.chromosomes}
        self.chr_scale_factors = {}
        self._density = None

    def add_distances(self, chr_index, bin1, bin2, values):
        """
        Add the values of records on one chromosome.

        Parameters
        ----------
        chr_index : int
            Index of the chromosome the records belong to. Contributions to
            unknown chromosomes are ignored.
        bin1, bin2 : 1D array of int
            Chromosome-local bins of the records.
        values : 1D array of float
            Normalized values. Non-finite values are skipped.

        """
        if chr_index not in self.chromosomes:
            return
        bin1 = np.asarray(bin1, dtype=np.int64)
        bin2 = np.asarray(bin2, dtype=np.int64)
        values = np.asarray(values, dtype=np.float64)

        dist = np.abs(bin1 - bin2)
        keep = np.isfinite(values) & (dist < self.n_bins)
        dist, values = dist[keep], values[keep]

        self.actual_distances += np.bincount(
            dist, weights=values, minlength=self.n_bins
        )
        self.chromosome_counts[chr_index] += values.sum()
        self._density = None

    def add_distance(self, chr_index, bin1, bin2, value):
        self.add_distances(chr_index, [bin1], [bin2], [value])

    def _possible_distances(self):
        possible = np.zeros(self.n_bins)
        for chrom in self.chromosomes.values():
            nb = min(chrom.length // self.binsize, self.n_bins)
            possible[:nb] += nb - np.arange(nb)
        return possible

    def compute_density(self):
        """Smooth the accumulated sums into the averaged density profile"""
        actual = self.actual_distances
        possible = self._possible_distances()
        n = self.n_bins
        density = np.full(n, np.nan)

        if n:
            num_sum = actual[0]
            den_sum = possible[0]
            bound1 = bound2 = 0
            for i in range(n):
                if num_sum < self.min_count:
                    while num_sum < self.min_count and bound2 < n - 1:
                        bound2 += 1
                        num_sum += actual[bound2]
                        den_sum += possible[bound2]
                elif bound2 - bound1 > 0:
                    while (
                        bound2 - bound1 > 0
                        and num_sum - actual[bound1] - actual[bound2] >= self.min_count
                    ):
                        num_sum -= actual[bound1] + actual[bound2]
                        den_sum -= possible[bound1] + possible[bound2]
                        bound1 += 1
                        bound2 -= 1

                if den_sum > 0:
                    density[i] = num_sum / den_sum

                # widen by two to stay centered on the next distance
                if bound2 + 2 < n:
                    num_sum += actual[bound2 + 1] + actual[bound2 + 2]
                    den_sum += possible[bound2 + 1] + possible[bound2 + 2]
                    bound2 += 2
                elif bound2 + 1 < n:
                    num_sum += actual[bound2 + 1]
                    den_sum += possible[bound2 + 1]
                    bound2 += 1

        self.chr_scale_factors = {}
        for idx, chrom in self.chromosomes.items():
            observed = self.chromosome_counts[idx]
            if observed <= 0:
                continue
            nb = min(chrom.length // self.binsize, n)
            expected = np.nansum(density[:nb] * (nb - np.arange(nb)))
            self.chr_scale_factors[idx] = expected / observed

        self._density = density
        logger.info(f"Computed expected density over {n} distances ({self.norm.value})")
        return density

    @property
    def density_avg(self) -> np.ndarray:
        if self._density is None:
            raise RuntimeError("compute_density() must be called first")
        return self._density

    def to_function(self, unit=Unit.BP) -> ExpectedValueFunction:
        return ExpectedValueFunction(
            self.density_avg,
            self.chr_scale_factors,
            binsize=self.binsize,
            norm=self.norm,
            unit=unit,
        )


def integrate_expected(
    chunks: Iterable[pd.DataFrame],
    genome: GenomeBins,
    estimator: ExpectedValueCalculation,
) -> np.ndarray:
    """
    Feed normalized genome-wide records to an estimator and return the
    averaged profile.

    Parameters
    ----------
    chunks : iterable of DataFrame
        Record chunks in genome-wide coordinates with columns ``bin1_id``,
        ``bin2_id`` and ``value``. Consumed in a single pass.
    genome : GenomeBins
        Bin layout used to resolve each record's chromosome and local bins.
    estimator : ExpectedValueCalculation

    Returns
    -------
    1D array
        The estimator's density profile after a single finalization.

    """
    for chunk in chunks:
        if not len(chunk):
            continue
        bin1 = chunk["bin1_id"].to_numpy()
        bin2 = chunk["bin2_id"].to_numpy()
        values = chunk["value"].to_numpy()

        chrom = genome.chrom_of_bin(bin1)
        x = genome.to_local(bin1)
        y = genome.to_local(bin2)
        for cid in np.unique(chrom):
            sel = chrom == cid
            estimator.add_distances(int(cid), x[sel], y[sel], values[sel])

    estimator.compute_density()
    return estimator.density_avg
