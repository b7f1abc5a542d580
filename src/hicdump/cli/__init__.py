import click

from .._logging import set_logging_context, set_verbosity_level
from .._version import __version__

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


class UnsortedGroup(click.Group):
    def list_commands(self, ctx):
        return list(self.commands)


@click.version_option(__version__, "-V", "--version")
@click.group(context_settings=CONTEXT_SETTINGS, cls=UnsortedGroup)
@click.option("-v", "--verbose", help="Verbose logging.", count=True)
def cli(verbose):
    """
    Export contact matrices, normalization vectors, expected values and
    eigenvectors from Hi-C datasets.

    Type -h or --help after any subcommand for more information.

    """
    set_logging_context("cli")
    set_verbosity_level(min(verbose, 2))


from . import dump
