import os
from io import BytesIO, StringIO

import numpy as np
import pytest

from hicdump import pipeline
from hicdump.api import MemoryDataset
from hicdump.assemble import assemble_whole_genome, iter_block_records
from hicdump.balance import compute_norm_vector
from hicdump.dump import RECORD_DTYPE
from hicdump.errors import (
    EmptyRegion,
    MissingNormalization,
    MissingResolution,
    UnknownChromosome,
    UnsupportedCombination,
)
from hicdump.expected import (
    ExpectedValueCalculation,
    ExpectedValueFunction,
    integrate_expected,
)
from hicdump.genome import GenomeBins, real_chromosomes
from hicdump.models import DumpRequest, NormalizationType, Unit, Zoom
from hicdump.normalize import apply_normalization
from hicdump.pipeline import run_dump

from _common import BLOCKS, CHROMSIZES


def _run(dataset, kind, norm, chrom1, chrom2, binsize=100, unit="BP", **kwargs):
    request = DumpRequest.parse(
        kind, norm, ["memory"], chrom1, chrom2, unit, binsize, **kwargs
    )
    binary = request.resolved_format.value == "binary"
    stream = BytesIO() if binary else StringIO()
    run_dump(request, dataset=dataset, stream=stream)
    return stream.getvalue()


@pytest.fixture
def kr_dataset():
    chr2 = np.full(21, 4.0)
    chr2[5] = np.nan
    return MemoryDataset(
        CHROMSIZES,
        BLOCKS,
        norm_vectors={
            ("chr1", 100, "KR"): np.full(11, 2.0),
            ("chr2", 100, "KR"): chr2,
        },
        expected={(100, "KR"): ExpectedValueFunction([4.0, 2.0, 1.0], {1: 2.0})},
        eigenvectors={("chr1", 100, "KR"): [1.0, 3.0, np.nan, 5.0]},
    )


def test_whole_genome_observed(toy_dataset):
    out = _run(toy_dataset, "observed", "NONE", "All", "All")
    assert out.splitlines() == ["0\t11\t1.0", "2\t16\t3.0", "10\t31\t7.0"]


def test_whole_genome_observed_include_intra(toy_dataset):
    out = _run(toy_dataset, "observed", "NONE", "All", "All", include_intra=True)
    lines = out.splitlines()
    assert len(lines) == 9
    assert lines[0] == "0\t0\t10.0"
    assert lines[-1] == "15\t17\t1.0"


def test_whole_genome_observed_balanced(toy_dataset):
    out = _run(toy_dataset, "observed", "VC", "All", "All", include_intra=True)
    rows = [line.split("\t") for line in out.splitlines()]
    assert len(rows) == 9
    values = np.array([float(r[2]) for r in rows])
    assert np.all(np.isfinite(values))
    raw = sum(c for block in BLOCKS.values() for _, _, c in block)
    assert values.sum() == pytest.approx(raw)


def test_whole_genome_norm(toy_dataset):
    out = _run(toy_dataset, "norm", "VC", "All", "All", include_intra=True)
    lines = out.splitlines()
    assert lines[0] == "100\t32\t21"
    assert len(lines) == 1 + 32 + 21
    vector = np.array([float(x) for x in lines[1:33]])
    assert np.isfinite(vector[0])
    assert np.isnan(vector[4])


def test_whole_genome_norm_expected_from_intra_blocks(toy_dataset, monkeypatch):
    tags = []

    def _integrate(chunks, genome, estimator):
        tags.append(estimator.norm)
        return integrate_expected(chunks, genome, estimator)

    monkeypatch.setattr(pipeline, "integrate_expected", _integrate)
    lines = _run(toy_dataset, "norm", "VC", "All", "All").splitlines()
    assert lines[0] == "100\t32\t21"
    vector = np.array([float(x) for x in lines[1:33]])
    profile = np.array([float(x) for x in lines[33:]])
    assert tags == [NormalizationType.GW_KR]

    chroms = toy_dataset.chromosomes
    zoom = Zoom(Unit.BP, 100)
    genome = GenomeBins(chroms, zoom)

    # without --include-intra the vector only sees inter-chromosomal records
    inter = assemble_whole_genome(toy_dataset, chroms, zoom, False, None, genome)
    expected_vector = compute_norm_vector(inter, genome.n_bins, "VC", genome=genome)
    np.testing.assert_allclose(vector, expected_vector)
    assert np.isnan(vector[1])

    # the profile still comes from every intra-chromosomal block
    estimator = ExpectedValueCalculation(chroms, 100, NormalizationType.GW_KR)
    for chrom in real_chromosomes(chroms):
        for chunk in iter_block_records(toy_dataset, chrom, chrom, zoom, genome):
            balanced = apply_normalization(chunk, expected_vector)
            estimator.add_distances(
                chrom.index,
                genome.to_local(balanced["bin1_id"]),
                genome.to_local(balanced["bin2_id"]),
                balanced["value"],
            )
    estimator.compute_density()
    assert len(profile) == 21
    assert np.isfinite(profile[0])
    np.testing.assert_allclose(profile, estimator.density_avg)


def test_whole_genome_rejects_fragments(toy_dataset):
    with pytest.raises(UnsupportedCombination):
        _run(toy_dataset, "observed", "NONE", "All", "All", unit="FRAG", binsize=1)


def test_pair_observed_text(toy_dataset):
    # chromosomes given in reverse order are swapped
    out = _run(toy_dataset, "observed", "NONE", "chr2", "chr1")
    assert out.splitlines() == ["0\t0\t1.0", "200\t500\t3.0", "1000\t2000\t7.0"]


def test_pair_observed_binary(kr_dataset):
    out = _run(kr_dataset, "observed", "KR", "chr1", "chr2", output_format="binary")
    assert np.frombuffer(out[:4], dtype="<i4")[0] == 3
    records = np.frombuffer(out[4:], dtype=RECORD_DTYPE)
    assert list(records["x"]) == [0, 200, 1000]
    assert list(records["y"]) == [0, 500, 2000]
    assert records["value"][0] == np.float32(0.125)
    assert np.isnan(records["value"][1])
    assert records["value"][2] == np.float32(0.875)


def test_pair_observed_binary_to_file(kr_dataset, tmp_path):
    path = str(tmp_path / "chr1_chr2.bin")
    request = DumpRequest.parse(
        "observed", "NONE", ["memory"], "chr1", "chr2", "BP", 100, out=path
    )
    run_dump(request, dataset=kr_dataset)
    with open(path, "rb") as f:
        buf = f.read()
    assert len(buf) == 4 + 3 * 12


def test_pair_observed_missing_vector(toy_dataset):
    with pytest.raises(MissingNormalization):
        _run(toy_dataset, "observed", "KR", "chr1", "chr2")


def test_pair_observed_empty_region():
    ds = MemoryDataset(CHROMSIZES, {("chr1", "chr2", 100): [(0, 0, 1)]})
    with pytest.raises(EmptyRegion):
        _run(ds, "observed", "NONE", "chr2", "chr2")


def test_missing_resolution():
    ds = MemoryDataset([("chr1", 1_000_000)], {}, zooms=[10000, 25000])
    with pytest.raises(MissingResolution) as exc:
        _run(ds, "observed", "NONE", "chr1", "chr1", binsize=50000)
    assert set(exc.value.available["BP"]) == {10000, 25000}


def test_unknown_chromosome(toy_dataset):
    with pytest.raises(UnknownChromosome):
        _run(toy_dataset, "observed", "NONE", "chr1", "chr3")


def test_failed_request_creates_no_output(toy_dataset, tmp_path):
    path = str(tmp_path / "out.txt")
    request = DumpRequest.parse(
        "observed", "KR", ["memory"], "chr1", "chr2", "BP", 100, out=path,
        output_format="text",
    )
    with pytest.raises(MissingNormalization):
        run_dump(request, dataset=toy_dataset)
    assert not os.path.exists(path)


@pytest.mark.parametrize(
    "kind,chrom1,chrom2,kwargs",
    [
        ("oe", "chr1", "chr2", {}),
        ("pearson", "All", "All", {}),
        ("eigenvector", "All", "All", {}),
        ("observed", "All", "chr1", {}),
        ("norm", "All", "chr1", {}),
        ("norm", "chr1", "All", {}),
        ("expected", "chr2", "All", {}),
        ("norm", "chr1", "chr1", {"output_format": "binary"}),
        ("observed", "All", "All", {"output_format": "binary"}),
    ],
)
def test_unsupported_combinations(toy_dataset, kind, chrom1, chrom2, kwargs):
    with pytest.raises(UnsupportedCombination):
        _run(toy_dataset, kind, "NONE", chrom1, chrom2, **kwargs)


def test_oe_text(toy_dataset):
    out = _run(toy_dataset, "oe", "NONE", "chr1", "chr1")
    rows = [line.split(" ") for line in out.splitlines()]
    assert len(rows) == 11
    assert all(len(row) == 11 for row in rows)
    mat = np.array(rows, dtype=float)
    np.testing.assert_allclose(mat, mat.T)


def test_pearson_binary(toy_dataset):
    out = _run(toy_dataset, "pearson", "NONE", "chr1", "chr1", output_format="binary")
    assert list(np.frombuffer(out[:8], dtype="<i4")) == [11, 11]
    mat = np.frombuffer(out[8:], dtype="<f4").reshape(11, 11)
    assert np.isnan(mat[4]).all()
    assert mat[0, 0] == pytest.approx(1.0)


def test_oe_with_stored_expected(kr_dataset):
    out = _run(kr_dataset, "oe", "KR", "chr2", "chr2")
    mat = np.array([line.split(" ") for line in out.splitlines()], dtype=float)
    assert mat.shape == (21, 21)
    # (0, 0, 5) / (4 * 4) / 4.0
    assert mat[0, 0] == pytest.approx(5 / 16 / 4)


def test_norm_single_chromosome(kr_dataset):
    out = _run(kr_dataset, "norm", "KR", "chr2", "chr2")
    lines = out.splitlines()
    assert len(lines) == 21
    assert lines[0] == "4.0"
    assert lines[5] == "NaN"


def test_norm_missing(toy_dataset):
    with pytest.raises(MissingNormalization):
        _run(toy_dataset, "norm", "VC", "chr1", "chr1")


def test_expected(kr_dataset):
    assert _run(kr_dataset, "expected", "KR", "All", "All").split() == [
        "4.0",
        "2.0",
        "1.0",
    ]
    assert _run(kr_dataset, "expected", "KR", "chr1", "chr1").split() == [
        "2.0",
        "1.0",
        "0.5",
    ]


def test_expected_missing(toy_dataset):
    with pytest.raises(MissingNormalization):
        _run(toy_dataset, "expected", "KR", "All", "All")


def test_eigenvector(kr_dataset):
    out = _run(kr_dataset, "eigenvector", "KR", "chr1", "chr1")
    assert out.split() == ["-2.0", "0.0", "NaN", "2.0"]


def test_eigenvector_missing_vector(toy_dataset):
    with pytest.raises(MissingNormalization):
        _run(toy_dataset, "eigenvector", "KR", "chr1", "chr1")
