import errno
import os
import sys
from functools import wraps


def exit_on_broken_pipe(exit_code):
    """
    Decorator to catch a broken pipe (EPIPE) error and exit cleanly.

    Dumps are usually piped into other programs, e.g. ``head(1)``, which may
    close their end of the pipe before the whole matrix has been written.

    Notes
    -----
    Python traps SIGPIPE and raises it as ``BrokenPipeError``. Standard
    streams are flushed again at interpreter shutdown, so stdout is pointed
    at devnull before exiting to avoid a second error.

    """
    def decorator(func):
        @wraps(func)
        def decorated(*args, **kwargs):
            try:
                func(*args, **kwargs)
            except OSError as e:
                if e.errno == errno.EPIPE:
                    devnull = os.open(os.devnull, os.O_WRONLY)
                    os.dup2(devnull, sys.stdout.fileno())
                    sys.exit(exit_code)
                else:
                    raise
        return decorated
    return decorator
