"""
One dump invocation, from a :py:class:`DumpRequest` to serialized output.

Every precondition (chromosome names, kind/format combination, resolution,
presence of blocks and vectors) is checked before the output is opened, so
a failed request leaves no partial output behind. Once writing has begun a
late error may leave a truncated destination.

"""
from __future__ import annotations

from contextlib import nullcontext

import numpy as np
import pandas as pd

from ._logging import get_logger
from .assemble import assemble_whole_genome, iter_block_records, iter_whole_genome
from .balance import compute_norm_vector
from .dump import (
    open_output,
    write_dense,
    write_norm_bundle,
    write_records,
    write_records_binary,
    write_vector,
)
from .errors import (
    EmptyRegion,
    MissingNormalization,
    UnsupportedCombination,
)
from .expected import ExpectedValueCalculation, integrate_expected
from .genome import GenomeBins
from .matrix import oe_matrix, pearson_matrix
from .models import (
    CHR_ALL,
    DumpRequest,
    NormalizationType,
    OutputFormat,
    OutputKind,
    Unit,
    n_bins,
)
from .normalize import apply_normalization, balance_values
from .store import open_dataset

__all__ = ["run_dump"]

logger = get_logger(__name__)

# Normalization the genome-wide expected profile is tagged with, whatever
# normalization the vector itself was computed with
EXPECTED_NORM = NormalizationType.GW_KR


def _validate(request: DumpRequest, chrom1, chrom2) -> None:
    kind = request.kind
    whole_genome = request.is_whole_genome
    any_all = CHR_ALL in (chrom1.name, chrom2.name)

    if request.resolved_format == OutputFormat.BINARY and not request.is_matrix_dump:
        raise UnsupportedCombination(
            f"Binary output is only available for chromosome-pair observed, oe "
            f"and pearson dumps, not '{kind.value}'"
            + (" over the whole genome" if whole_genome else "")
        )

    if any_all and not whole_genome:
        raise UnsupportedCombination(
            f"Cannot pair {CHR_ALL} with a chromosome: {chrom1.name} - {chrom2.name}"
        )
    if kind in (OutputKind.OE, OutputKind.PEARSON):
        if whole_genome:
            raise UnsupportedCombination(
                f"{kind.value} is not available for the whole genome"
            )
        if chrom1.name != chrom2.name:
            raise UnsupportedCombination(
                f"{kind.value} is only available for intra-chromosomal matrices; "
                f"got {chrom1.name} - {chrom2.name}"
            )
    if kind == OutputKind.EIGENVECTOR and whole_genome:
        raise UnsupportedCombination("eigenvector is not available for the whole genome")

    if whole_genome and request.zoom.unit == Unit.FRAG:
        raise UnsupportedCombination(
            "All versus All currently not supported on fragment resolution"
        )


def _output(request: DumpRequest, stream, binary: bool):
    if stream is not None:
        return nullcontext(stream)
    return open_output(request.out, binary=binary)


def _zoom_data(dataset, chrom1, chrom2, zoom):
    matrix = dataset.get_matrix(chrom1, chrom2)
    zd = matrix.get_zoom_data(zoom) if matrix is not None else None
    if zd is None:
        raise EmptyRegion(
            f"No contact data for {chrom1.name} - {chrom2.name} at {zoom}"
        )
    return zd


def _require_vector(dataset, chrom, zoom, norm):
    vector = dataset.get_normalization_vector(chrom.index, zoom, norm)
    if vector is None:
        raise MissingNormalization(
            f"{norm.value} normalization vector not available for "
            f"{chrom.name} at {zoom}"
        )
    return vector


def _require_expected(dataset, zoom, norm):
    expected = dataset.get_expected_values(zoom, norm)
    if expected is None:
        raise MissingNormalization(
            f"{norm.value} expected values not available at {zoom}"
        )
    return expected


def _dump_whole_genome_observed(request, dataset, stream):
    zoom, norm = request.zoom, request.norm
    chroms = dataset.chromosomes
    genome = GenomeBins(chroms, zoom)

    if norm == NormalizationType.NONE:
        chunks = iter_whole_genome(
            dataset, chroms, zoom, request.include_intra, request.chunksize, genome
        )
        with _output(request, stream, binary=False) as f:
            n = write_records(f, chunks)
    else:
        records = assemble_whole_genome(
            dataset, chroms, zoom, request.include_intra, request.chunksize, genome
        )
        vector = compute_norm_vector(records, genome.n_bins, norm, genome=genome)
        values = apply_normalization(records, vector)
        del records
        with _output(request, stream, binary=False) as f:
            n = write_records(f, [values])
    logger.info(f"Wrote {n} whole-genome records")


def _intra_values(dataset, genome, zoom, vector, chunksize):
    for chrom in genome.chromosomes:
        for chunk in iter_block_records(dataset, chrom, chrom, zoom, genome, chunksize):
            yield apply_normalization(chunk, vector)


def _dump_whole_genome_norm(request, dataset, stream):
    zoom, norm = request.zoom, request.norm
    chroms = dataset.chromosomes
    genome = GenomeBins(chroms, zoom)

    records = assemble_whole_genome(
        dataset, chroms, zoom, request.include_intra, request.chunksize, genome
    )
    vector = compute_norm_vector(records, genome.n_bins, norm, genome=genome)
    del records

    estimator = ExpectedValueCalculation(chroms, zoom.binsize, EXPECTED_NORM)
    profile = integrate_expected(
        _intra_values(dataset, genome, zoom, vector, request.chunksize),
        genome,
        estimator,
    )

    with _output(request, stream, binary=False) as f:
        write_norm_bundle(f, zoom.binsize, vector, profile)
    logger.info(
        f"Wrote {norm.value} vector ({len(vector)} bins) and "
        f"{estimator.norm.value} expected profile ({len(profile)} distances)"
    )


def _pair_records(zd, binsize, vector1, vector2, chunksize):
    for chunk in zd.contact_records(chunksize):
        bin1 = chunk["bin1_id"].to_numpy()
        bin2 = chunk["bin2_id"].to_numpy()
        if vector1 is None:
            values = chunk["count"].to_numpy()
        else:
            values = balance_values(
                bin1, bin2, chunk["count"].to_numpy(), vector1, vector2
            )
        yield pd.DataFrame(
            {"x": bin1 * binsize, "y": bin2 * binsize, "value": values},
            columns=["x", "y", "value"],
        )


def _dump_pair_observed(request, dataset, chrom1, chrom2, stream):
    zoom, norm = request.zoom, request.norm
    zd = _zoom_data(dataset, chrom1, chrom2, zoom)

    vector1 = vector2 = None
    if norm != NormalizationType.NONE:
        vector1 = _require_vector(dataset, chrom1, zoom, norm)
        vector2 = _require_vector(dataset, chrom2, zoom, norm)

    chunks = _pair_records(zd, zoom.binsize, vector1, vector2, request.chunksize)
    if request.resolved_format == OutputFormat.BINARY:
        frames = list(chunks)
        records = (
            pd.concat(frames, ignore_index=True)
            if frames
            else pd.DataFrame({"x": [], "y": [], "value": []})
        )
        with _output(request, stream, binary=True) as f:
            write_records_binary(f, records)
        n = len(records)
    else:
        with _output(request, stream, binary=False) as f:
            n = write_records(f, chunks)
    logger.info(f"Wrote {n} records of {chrom1.name} - {chrom2.name}")


def _dump_pair_dense(request, dataset, chrom, stream):
    zoom, norm = request.zoom, request.norm
    zd = _zoom_data(dataset, chrom, chrom, zoom)
    vector = _require_vector(dataset, chrom, zoom, norm)
    expected = _require_expected(dataset, zoom, norm)

    mat = oe_matrix(
        zd.to_frame(),
        vector,
        expected.expected_vector(chrom.index),
        n_bins(chrom.length, zoom.binsize),
    )
    if request.kind == OutputKind.PEARSON:
        mat = pearson_matrix(mat)

    binary = request.resolved_format == OutputFormat.BINARY
    with _output(request, stream, binary=binary) as f:
        write_dense(f, mat, binary=binary)
    logger.info(f"Wrote {mat.shape[0]}x{mat.shape[1]} {request.kind.value} matrix")


def _dump_norm(request, dataset, chrom, stream):
    vector = _require_vector(dataset, chrom, request.zoom, request.norm)
    with _output(request, stream, binary=False) as f:
        write_vector(f, vector)


def _dump_expected(request, dataset, chrom, stream):
    expected = _require_expected(dataset, request.zoom, request.norm)
    if chrom.name == CHR_ALL:
        values = expected.expected_values
    else:
        values = expected.expected_vector(chrom.index)
    with _output(request, stream, binary=False) as f:
        write_vector(f, values)


def _dump_eigenvector(request, dataset, chrom, stream):
    zoom, norm = request.zoom, request.norm
    _require_vector(dataset, chrom, zoom, norm)
    _zoom_data(dataset, chrom, chrom, zoom)
    values = dataset.get_eigenvector(chrom, zoom, 0, norm)
    if values is None:
        raise MissingNormalization(
            f"Eigenvector not available for {chrom.name} at {zoom} ({norm.value})"
        )
    with _output(request, stream, binary=False) as f:
        write_vector(f, np.asarray(values, dtype=float), center=True)


def run_dump(request: DumpRequest, dataset=None, stream=None) -> None:
    """
    Execute a dump.

    Parameters
    ----------
    request : DumpRequest
        What to dump and where.
    dataset : Dataset, optional
        Source dataset. Opened from ``request.paths`` when omitted.
    stream : file-like, optional
        Write to this already open stream instead of ``request.out``. It is
        not closed. Binary output needs a binary stream.

    Raises
    ------
    DumpError
        Any failed precondition, before output is opened.

    """
    if dataset is None:
        dataset = open_dataset(request.paths, chunksize=request.chunksize)

    chrom1 = dataset.get_chromosome(request.chrom1)
    chrom2 = dataset.get_chromosome(request.chrom2)
    # single-chromosome kinds use the first name as given
    target = chrom1
    if chrom1.index > chrom2.index:
        chrom1, chrom2 = chrom2, chrom1

    _validate(request, chrom1, chrom2)
    dataset.check_zoom(request.zoom)
    logger.info(
        f"Dumping {request.kind.value} {request.norm.value} "
        f"{chrom1.name} - {chrom2.name} at {request.zoom}"
    )

    kind = request.kind
    if request.is_whole_genome and kind == OutputKind.OBSERVED:
        _dump_whole_genome_observed(request, dataset, stream)
    elif kind == OutputKind.OBSERVED:
        _dump_pair_observed(request, dataset, chrom1, chrom2, stream)
    elif kind in (OutputKind.OE, OutputKind.PEARSON):
        _dump_pair_dense(request, dataset, chrom1, stream)
    elif kind == OutputKind.NORM:
        if request.is_whole_genome:
            _dump_whole_genome_norm(request, dataset, stream)
        else:
            _dump_norm(request, dataset, target, stream)
    elif kind == OutputKind.EXPECTED:
        _dump_expected(request, dataset, target, stream)
    elif kind == OutputKind.EIGENVECTOR:
        _dump_eigenvector(request, dataset, target, stream)
