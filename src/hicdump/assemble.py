"""
Assembly of a whole-genome sparse matrix from chromosome-pair blocks.

"""
from __future__ import annotations

from collections.abc import Iterator

import pandas as pd

from ._logging import get_logger
from .errors import UnsupportedCombination
from .genome import GenomeBins, real_chromosomes
from .models import Chromosome, Unit, Zoom, empty_records, make_records

__all__ = ["assemble_whole_genome", "iter_block_records", "iter_whole_genome"]

logger = get_logger(__name__)


def iter_block_records(
    dataset,
    chrom1: Chromosome,
    chrom2: Chromosome,
    zoom: Zoom,
    genome: GenomeBins,
    chunksize: int | None = None,
) -> Iterator[pd.DataFrame]:
    """
    Records of one chromosome-pair block shifted into genome-wide
    coordinates. Yields nothing if the block or its zoom level is absent.

    """
    matrix = dataset.get_matrix(chrom1, chrom2)
    if matrix is None:
        return
    zd = matrix.get_zoom_data(zoom)
    if zd is None:
        return

    add_x = genome.offset(chrom1)
    add_y = genome.offset(chrom2)
    for chunk in zd.contact_records(chunksize):
        yield make_records(
            chunk["bin1_id"].to_numpy() + add_x,
            chunk["bin2_id"].to_numpy() + add_y,
            chunk["count"].to_numpy(),
        )


def _iter_whole_genome(dataset, chroms, zoom, include_intra, chunksize, genome):
    n_records = 0
    for c1 in chroms:
        for c2 in chroms:
            if c1.index < c2.index or (c1 == c2 and include_intra):
                n_block = 0
                for chunk in iter_block_records(dataset, c1, c2, zoom, genome, chunksize):
                    n_block += len(chunk)
                    yield chunk
                logger.debug(f"{c1.name} x {c2.name}: {n_block} records")
                n_records += n_block
    logger.info(f"Assembled {n_records} whole-genome records at {zoom}")


def iter_whole_genome(
    dataset,
    chromosomes,
    zoom: Zoom,
    include_intra: bool = False,
    chunksize: int | None = None,
    genome: GenomeBins | None = None,
) -> Iterator[pd.DataFrame]:
    """
    Stream the records of a whole-genome matrix.

    Blocks are visited in dataset order, for every chromosome pair with
    ``index(c1) < index(c2)`` and, if ``include_intra`` is set, the diagonal
    blocks ``c1 == c2``. Bin ids are shifted by the genome-wide offsets of
    their chromosomes. Duplicate records are not merged.

    Parameters
    ----------
    dataset : Dataset
        Source of chromosome-pair blocks.
    chromosomes : sequence of Chromosome
        Chromosomes in dataset order. The pseudo-chromosome is skipped.
    zoom : Zoom
        Resolution. Fragment resolutions are rejected.
    include_intra : bool, optional
        Include the intra-chromosomal blocks.
    chunksize : int, optional
        Number of records read from a block at a time.
    genome : GenomeBins, optional
        Precomputed bin layout for ``chromosomes`` at ``zoom``.

    Returns
    -------
    Iterator of DataFrame
        Chunks with columns ``bin1_id``, ``bin2_id``, ``count``. A single,
        non-restartable pass.

    Raises
    ------
    UnsupportedCombination
        For fragment resolutions, before any block is read.

    """
    if zoom.unit == Unit.FRAG:
        raise UnsupportedCombination(
            "All versus All currently not supported on fragment resolution"
        )
    if genome is None:
        genome = GenomeBins(chromosomes, zoom)
    chroms = real_chromosomes(chromosomes)
    return _iter_whole_genome(dataset, chroms, zoom, include_intra, chunksize, genome)


def assemble_whole_genome(
    dataset,
    chromosomes,
    zoom: Zoom,
    include_intra: bool = False,
    chunksize: int | None = None,
    genome: GenomeBins | None = None,
) -> pd.DataFrame:
    """Materialize :py:func:`iter_whole_genome` into a single frame"""
    chunks = list(
        iter_whole_genome(dataset, chromosomes, zoom, include_intra, chunksize, genome)
    )
    if not chunks:
        return empty_records()
    return pd.concat(chunks, ignore_index=True)
