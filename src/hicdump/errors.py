"""
Failure modes of a dump. Each one aborts the whole export; the CLI turns
them into a message and a distinct exit status.

"""
from __future__ import annotations

__all__ = [
    "DumpError",
    "EmptyRegion",
    "InvalidSelection",
    "MissingNormalization",
    "MissingResolution",
    "UnknownChromosome",
    "UnsupportedCombination",
]


class DumpError(Exception):
    exit_code = 1


class InvalidSelection(DumpError, ValueError):
    """Unknown output kind, normalization, unit or a malformed bin size."""

    exit_code = 2


class UnknownChromosome(DumpError, KeyError):
    exit_code = 3

    def __init__(self, name: str, known: list[str] | None = None):
        self.name = name
        self.known = list(known) if known is not None else []
        super().__init__(name)

    def __str__(self) -> str:
        msg = f"Unknown chromosome: {self.name}"
        if self.known:
            msg += f". Known chromosomes: {', '.join(self.known)}"
        return msg


class UnsupportedCombination(DumpError):
    exit_code = 4


class MissingResolution(DumpError):
    """
    The requested zoom is not stored in the dataset. ``available`` maps
    each unit name to the bin sizes that are.

    """

    exit_code = 5

    def __init__(self, zoom, available: dict[str, list[int]]):
        self.zoom = zoom
        self.available = available
        super().__init__(zoom)

    def __str__(self) -> str:
        lines = [f"Unknown resolution: {self.zoom}"]
        for unit, binsizes in self.available.items():
            sizes = " ".join(str(b) for b in binsizes) or "(none)"
            lines.append(f"Available bin sizes ({unit}): {sizes}")
        return "\n".join(lines)


class MissingNormalization(DumpError):
    exit_code = 6


class EmptyRegion(DumpError):
    exit_code = 7
