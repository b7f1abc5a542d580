from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

import numpy as np
import pandas as pd

from .errors import InvalidSelection

__all__ = [
    "CHR_ALL",
    "RECORD_COLUMNS",
    "Chromosome",
    "DumpRequest",
    "NormalizationType",
    "OutputFormat",
    "OutputKind",
    "Unit",
    "Zoom",
    "empty_records",
    "make_records",
    "n_bins",
]

# Name of the synthetic chromosome standing for the whole genome
CHR_ALL = "All"

RECORD_COLUMNS = ["bin1_id", "bin2_id", "count"]


class Unit(Enum):
    BP = "BP"
    FRAG = "FRAG"


class NormalizationType(Enum):
    NONE = "NONE"
    VC = "VC"
    VC_SQRT = "VC_SQRT"
    KR = "KR"
    GW_VC = "GW_VC"
    GW_KR = "GW_KR"
    INTER_VC = "INTER_VC"
    INTER_KR = "INTER_KR"

    @property
    def is_vc(self) -> bool:
        return self in (
            NormalizationType.VC,
            NormalizationType.VC_SQRT,
            NormalizationType.GW_VC,
            NormalizationType.INTER_VC,
        )

    @property
    def is_kr(self) -> bool:
        return self in (
            NormalizationType.KR,
            NormalizationType.GW_KR,
            NormalizationType.INTER_KR,
        )

    @property
    def is_inter(self) -> bool:
        return self in (NormalizationType.INTER_VC, NormalizationType.INTER_KR)


class OutputKind(Enum):
    OBSERVED = "observed"
    OE = "oe"
    PEARSON = "pearson"
    NORM = "norm"
    EXPECTED = "expected"
    EIGENVECTOR = "eigenvector"


class OutputFormat(Enum):
    TEXT = "text"
    BINARY = "binary"


def _parse_enum(enum_cls, token, what):
    if isinstance(token, enum_cls):
        return token
    try:
        return enum_cls(token)
    except ValueError:
        choices = ", ".join(f'"{m.value}"' for m in enum_cls)
        raise InvalidSelection(
            f"{what} must be one of {choices}; got '{token}'."
        ) from None


class Chromosome(NamedTuple):
    index: int
    name: str
    length: int


class Zoom(NamedTuple):
    unit: Unit
    binsize: int

    def __str__(self) -> str:
        return f"{self.unit.value}_{self.binsize}"


def n_bins(length: int, binsize: int) -> int:
    """Number of bins spanned by a chromosome, counting the trailing partial
    bin as a full one"""
    return length // binsize + 1


def make_records(bin1, bin2, counts) -> pd.DataFrame:
    """Build a record chunk from three aligned sequences"""
    return pd.DataFrame(
        {
            "bin1_id": np.asarray(bin1, dtype=np.int64),
            "bin2_id": np.asarray(bin2, dtype=np.int64),
            "count": np.asarray(counts, dtype=np.float64),
        },
        columns=RECORD_COLUMNS,
    )


def empty_records() -> pd.DataFrame:
    return make_records([], [], [])


@dataclass(frozen=True)
class DumpRequest:
    """
    One export invocation.

    Parameters
    ----------
    kind : OutputKind
        Which transformation and serialization path to run.
    norm : NormalizationType
        Normalization applied to the primary output.
    paths : tuple of str
        Dataset sources. Several paths are combined into one dataset.
    chrom1, chrom2 : str
        Chromosome names. Both set to ``"All"`` selects the whole genome.
    zoom : Zoom
        Resolution unit and bin size.
    out : str, optional
        Destination path. Standard output when omitted.
    output_format : OutputFormat, optional
        Explicit output format. See :py:attr:`resolved_format`.
    include_intra : bool
        Include the intra-chromosomal blocks when assembling a whole-genome
        matrix.
    chunksize : int
        Number of records read from a block at a time.

    """

    kind: OutputKind
    norm: NormalizationType
    paths: tuple
    chrom1: str
    chrom2: str
    zoom: Zoom
    out: str | None = None
    output_format: OutputFormat | None = None
    include_intra: bool = False
    chunksize: int = 1_000_000

    @classmethod
    def parse(
        cls,
        kind,
        norm,
        paths,
        chrom1,
        chrom2,
        unit,
        binsize,
        out=None,
        output_format=None,
        include_intra=False,
        chunksize=1_000_000,
    ) -> DumpRequest:
        """Validate raw selection tokens into a request"""
        kind = _parse_enum(OutputKind, kind, "Matrix or vector")
        norm = _parse_enum(NormalizationType, norm, "Normalization")
        unit = _parse_enum(Unit, unit, "Unit")
        if output_format is not None:
            output_format = _parse_enum(OutputFormat, output_format, "Format")

        try:
            binsize = int(binsize)
        except (TypeError, ValueError):
            raise InvalidSelection(
                f"Integer expected for bin size. Found: {binsize}."
            ) from None
        if binsize <= 0:
            raise InvalidSelection(f"Bin size must be positive. Found: {binsize}.")

        try:
            chunksize = int(chunksize)
        except (TypeError, ValueError):
            raise InvalidSelection(
                f"Integer expected for chunk size. Found: {chunksize}."
            ) from None
        if chunksize <= 0:
            raise InvalidSelection(f"Chunk size must be positive. Found: {chunksize}.")

        if isinstance(paths, str):
            paths = (paths,)
        paths = tuple(paths)
        if not paths:
            raise InvalidSelection("At least one dataset path is required.")

        return cls(
            kind=kind,
            norm=norm,
            paths=paths,
            chrom1=chrom1,
            chrom2=chrom2,
            zoom=Zoom(unit, binsize),
            out=out,
            output_format=output_format,
            include_intra=bool(include_intra),
            chunksize=chunksize,
        )

    @property
    def is_whole_genome(self) -> bool:
        return self.chrom1 == CHR_ALL and self.chrom2 == CHR_ALL

    @property
    def is_matrix_dump(self) -> bool:
        """Chromosome-pair dump of a (transformed) contact matrix"""
        if self.kind in (OutputKind.OE, OutputKind.PEARSON):
            return True
        return self.kind == OutputKind.OBSERVED and not self.is_whole_genome

    @property
    def resolved_format(self) -> OutputFormat:
        if self.output_format is not None:
            return self.output_format
        if self.out is not None and self.out != "-" and self.is_matrix_dump:
            return OutputFormat.BINARY
        return OutputFormat.TEXT
