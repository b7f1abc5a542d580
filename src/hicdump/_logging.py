import logging
import sys

_logging_context = None
_loggers = {}

verbosity_to_loglevel = {
    -1: logging.ERROR,
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}

loglevel_to_verbosity = {level: v for v, level in verbosity_to_loglevel.items()}


def configure(
    logger, stream, level=logging.WARNING, format="{levelname}:{name}:{message}"
):
    """
    Send a logger's records to a single stream.

    Parameters
    ----------
    logger : :class:`logging.Logger`
        A logger.
    stream : file-like
        Destination of the records, like ``sys.stderr``. Dumps written to
        standard output are never interleaved with log records.
    level : int, optional
        The log level.
    format : str, optional
        A ``{``-style format string for log records.

    Notes
    -----
    Any of the logger's existing handlers are closed and removed. Records do
    not propagate to the root logger.

    """
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(format, style="{"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


def set_logging_context(ctx):
    """
    Switch between library use (``"lib"``: warnings only, bare format) and
    command-line use (``"cli"``: level-tagged records, Python warnings such
    as balancing non-convergence routed through logging).

    """
    global _logging_context

    logger = logging.getLogger("hicdump")

    if _logging_context != ctx:
        if ctx == "lib":
            configure(logger, sys.stderr, format="{name}: {message}")
            logging.captureWarnings(False)
        elif ctx == "cli":
            configure(logger, sys.stderr, level=logging.INFO)
            logging.captureWarnings(True)
        else:
            raise ValueError(f"Unknown logging context: '{ctx}'")
        _logging_context = ctx


def set_verbosity_level(level):
    logger = logging.getLogger("hicdump")
    try:
        loglevel = verbosity_to_loglevel[level]
    except KeyError:
        raise ValueError(
            f"Verbosity level must be one of: -1, 0, 1, 2; got '{level}'."
        ) from None
    logger.setLevel(loglevel)


def get_verbosity_level():
    logger = logging.getLogger("hicdump")
    return loglevel_to_verbosity[logger.level]


def get_logger(name="hicdump"):
    if _logging_context is None:
        set_logging_context("lib")

    if name not in _loggers:
        _loggers[name] = logging.getLogger(name)

    return _loggers[name]
