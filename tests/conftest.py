import h5py
import numpy as np
import pytest
from _common import BLOCKS, CHROMSIZES, MCOOL_PIXELS, write_cooler

from hicdump.api import MemoryDataset


@pytest.fixture
def toy_dataset():
    return MemoryDataset(CHROMSIZES, BLOCKS)


@pytest.fixture
def mcool_path(tmp_path):
    path = str(tmp_path / "toy.mcool")
    kr = np.full(30, 2.0)
    kr[1] = np.nan
    with h5py.File(path, "w") as f:
        for binsize, pixels in MCOOL_PIXELS.items():
            grp = f.create_group(f"resolutions/{binsize}")
            columns = {"KR": kr} if binsize == 100 else None
            write_cooler(grp, CHROMSIZES, binsize, pixels, columns)
    return path
