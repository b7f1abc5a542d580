import gzip
import os
import warnings
from io import BytesIO, StringIO

import numpy as np
import pandas as pd
import pytest

from hicdump.dump import (
    RECORD_DTYPE,
    center_vector,
    open_output,
    write_dense,
    write_norm_bundle,
    write_records,
    write_records_binary,
    write_vector,
)


def test_center_vector():
    out = center_vector([1.0, 3.0, np.nan, 5.0])
    np.testing.assert_array_equal(out, [-2.0, 0.0, np.nan, 2.0])


def test_center_vector_mean_is_zero():
    rng = np.random.default_rng(0)
    values = rng.normal(5, 3, size=100)
    values[::7] = np.nan
    out = center_vector(values)
    assert np.isnan(out[::7]).all()
    assert np.nanmean(out) == pytest.approx(0.0, abs=1e-12)


def test_center_vector_all_nan():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        out = center_vector([np.nan, np.nan])
    assert np.isnan(out).all()


def test_write_vector():
    f = StringIO()
    write_vector(f, [1.0, 3.0, np.nan, 5.0], center=True)
    assert f.getvalue().split() == ["-2.0", "0.0", "NaN", "2.0"]


def test_write_records():
    f = StringIO()
    chunks = [
        pd.DataFrame({"x": [0, 200], "y": [300, 400], "value": [1.0, np.nan]}),
        pd.DataFrame({"x": [500], "y": [500], "value": [2.5]}),
    ]
    n = write_records(f, chunks)
    assert n == 3
    lines = f.getvalue().splitlines()
    assert lines == ["0\t300\t1.0", "200\t400\tNaN", "500\t500\t2.5"]


def test_write_records_binary():
    f = BytesIO()
    records = pd.DataFrame(
        {"x": [0, 200, 1000], "y": [0, 500, 2000], "value": [0.125, np.nan, 7.0]}
    )
    write_records_binary(f, records)
    buf = f.getvalue()
    assert len(buf) == 4 + 3 * 12
    assert np.frombuffer(buf[:4], dtype="<i4")[0] == 3

    out = np.frombuffer(buf[4:], dtype=RECORD_DTYPE)
    assert list(out["x"]) == [0, 200, 1000]
    assert list(out["y"]) == [0, 500, 2000]
    assert out["value"][0] == np.float32(0.125)
    assert np.isnan(out["value"][1])


def test_write_records_binary_empty():
    f = BytesIO()
    write_records_binary(f, pd.DataFrame({"x": [], "y": [], "value": []}))
    assert f.getvalue() == b"\x00\x00\x00\x00"


def test_write_dense_binary():
    f = BytesIO()
    mat = np.arange(6, dtype=float).reshape(2, 3)
    write_dense(f, mat, binary=True)
    buf = f.getvalue()
    assert len(buf) == 8 + 6 * 4
    assert list(np.frombuffer(buf[:8], dtype="<i4")) == [2, 3]
    np.testing.assert_array_equal(
        np.frombuffer(buf[8:], dtype="<f4").reshape(2, 3), mat
    )


def test_write_dense_text():
    f = StringIO()
    write_dense(f, np.array([[1.0, np.nan], [np.nan, 2.0]]))
    assert f.getvalue().splitlines() == ["1.0 NaN", "NaN 2.0"]


def test_write_norm_bundle():
    f = StringIO()
    write_norm_bundle(f, 100, [1.0, np.nan, 2.0], [5.0, 4.0])
    lines = f.getvalue().splitlines()
    assert lines[0] == "100\t3\t2"
    assert lines[1:] == ["1.0", "NaN", "2.0", "5.0", "4.0"]


def test_open_output_closes_on_error(tmp_path):
    path = str(tmp_path / "out.txt")
    with pytest.raises(RuntimeError):
        with open_output(path) as f:
            f.write("partial\n")
            raise RuntimeError("boom")
    assert f.closed
    with open(path) as fh:
        assert fh.read() == "partial\n"


def test_open_output_truncates(tmp_path):
    path = tmp_path / "out.bin"
    path.write_bytes(b"old contents")
    with open_output(str(path), binary=True) as f:
        f.write(b"\x01")
    assert path.read_bytes() == b"\x01"


def test_open_output_gzip(tmp_path):
    path = str(tmp_path / "out.txt.gz")
    with open_output(path) as f:
        write_vector(f, [1.0, 2.0])
    with gzip.open(path, "rt") as fh:
        assert fh.read().split() == ["1.0", "2.0"]


def test_text_output_uses_platform_line_separator(tmp_path):
    path = str(tmp_path / "bundle.txt")
    with open_output(path) as f:
        write_norm_bundle(f, 100, [1.0, np.nan], [5.0])
        write_records(f, [pd.DataFrame({"x": [0], "y": [100], "value": [2.0]})])
        write_dense(f, np.eye(2))
    with open(path, "rb") as fh:
        raw = fh.read()
    sep = os.linesep.encode()
    lines = raw.split(sep)
    assert lines[-1] == b""
    assert lines[:-1] == [
        b"100\t2\t1", b"1.0", b"NaN", b"5.0", b"0\t100\t2.0", b"1.0 0.0", b"0.0 1.0"
    ]
