import sys

import click

from .._logging import get_logger
from ..errors import DumpError
from ..models import DumpRequest
from ..pipeline import run_dump
from . import cli
from ._util import exit_on_broken_pipe

logger = get_logger(__name__)


@cli.command()
@click.argument("kind", metavar="KIND")
@click.argument("norm", metavar="NORM")
@click.argument("paths", metavar="PATH...", nargs=-1, required=True)
@click.argument("chrom1")
@click.argument("chrom2")
@click.argument("unit")
@click.argument("binsize")
@click.option(
    "--out", "-o",
    help="Output file. Chromosome-pair observed, oe and pearson dumps are "
    "written in binary form unless --format is given. If .gz extension is "
    "detected, file is written using zlib. Default behavior is to stream "
    "text to stdout.",
)
@click.option(
    "--format", "output_format",
    help="Output format. Defaults to binary when --out is given for a "
    "chromosome-pair observed, oe or pearson dump, text otherwise.",
    type=click.Choice(["text", "binary"]),
)
@click.option(
    "--include-intra",
    help="Include the intra-chromosomal blocks when dumping the whole-genome "
    "observed matrix or normalization vector.",
    is_flag=True,
    default=False,
)
@click.option(
    "--chunksize", "-k",
    help="Sets the number of pixel records loaded from disk at one time.",
    type=int,
    default=1_000_000,
    show_default=True,
)
@exit_on_broken_pipe(1)
def dump(
    kind,
    norm,
    paths,
    chrom1,
    chrom2,
    unit,
    binsize,
    out,
    output_format,
    include_intra,
    chunksize,
):
    """
    Dump a contact matrix or a derived vector.

    KIND : observed, oe, pearson, norm, expected or eigenvector.

    NORM : NONE, VC, VC_SQRT, KR, GW_VC, GW_KR, INTER_VC or INTER_KR.

    PATH : One or more .cool/.mcool files. Several files are combined.

    CHROM1, CHROM2 : Chromosome names. Use All for both to dump the whole
    genome.

    UNIT : BP or FRAG.

    BINSIZE : Bin size of the resolution.

    """
    try:
        request = DumpRequest.parse(
            kind,
            norm,
            paths,
            chrom1,
            chrom2,
            unit,
            binsize,
            out=out,
            output_format=output_format,
            include_intra=include_intra,
            chunksize=chunksize,
        )
        run_dump(request)
    except DumpError as e:
        logger.error(e)
        sys.exit(e.exit_code)
