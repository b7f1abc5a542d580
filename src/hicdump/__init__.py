"""
hicdump
~~~~~~~

Export Hi-C contact matrices, normalization vectors, expected values and
eigenvectors as text or binary streams.

:license: BSD-3-Clause

"""
from ._logging import get_verbosity_level, set_verbosity_level
from ._version import __version__
from .api import CombinedDataset, Dataset, MemoryDataset
from .assemble import assemble_whole_genome, iter_whole_genome
from .balance import compute_norm_vector
from .errors import (
    DumpError,
    EmptyRegion,
    InvalidSelection,
    MissingNormalization,
    MissingResolution,
    UnknownChromosome,
    UnsupportedCombination,
)
from .expected import ExpectedValueCalculation, ExpectedValueFunction
from .genome import GenomeBins, bin_offsets
from .models import (
    Chromosome,
    DumpRequest,
    NormalizationType,
    OutputFormat,
    OutputKind,
    Unit,
    Zoom,
)
from .normalize import apply_normalization, balance_values
from .pipeline import run_dump
from .store import CoolerDataset, open_dataset

__all__ = [
    "Chromosome",
    "CombinedDataset",
    "CoolerDataset",
    "Dataset",
    "DumpError",
    "DumpRequest",
    "EmptyRegion",
    "ExpectedValueCalculation",
    "ExpectedValueFunction",
    "GenomeBins",
    "InvalidSelection",
    "MemoryDataset",
    "MissingNormalization",
    "MissingResolution",
    "NormalizationType",
    "OutputFormat",
    "OutputKind",
    "UnknownChromosome",
    "UnsupportedCombination",
    "Unit",
    "Zoom",
    "__version__",
    "apply_normalization",
    "assemble_whole_genome",
    "balance_values",
    "bin_offsets",
    "compute_norm_vector",
    "get_verbosity_level",
    "iter_whole_genome",
    "open_dataset",
    "run_dump",
    "set_verbosity_level",
]
