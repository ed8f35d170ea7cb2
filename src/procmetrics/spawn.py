"""Short-lived helper processes (``ps``, ``vmmap``, ``uname``)."""

import logging
import os
import subprocess
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

logger = logging.getLogger(__name__)


def helper_environment() -> dict[str, str]:
    """
    The caller's environment with a fixed locale and no terminal width.

    Helpers then print ``.`` as the decimal separator and never truncate
    their columns.
    """
    environment = {key: value for key, value in os.environ.items() if key != "COLUMNS"}
    environment["LC_ALL"] = "C"
    return environment


@contextmanager
def spawn(arguments: Sequence[str]) -> Iterator[subprocess.Popen]:
    """
    Run a command with its standard output on a pipe.

    However much of the output the caller consumes, the process is killed and
    reaped on exit so it can never linger as a zombie or orphan.
    """
    process = subprocess.Popen(
        list(arguments),
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
        stdin=subprocess.DEVNULL,
        env=helper_environment(),
        text=True,
        errors="replace",
    )

    try:
        yield process
    finally:
        try:
            process.stdout.close()
        except OSError:
            logger.warning("Failed to close output of %s process %d", arguments[0], process.pid, exc_info=True)

        try:
            process.kill()
            process.wait()
        except OSError:
            logger.warning("Failed to clean up %s process %d", arguments[0], process.pid, exc_info=True)


def read_output(arguments: Sequence[str]) -> str:
    """Run a command to completion and return its standard output."""
    with spawn(arguments) as process:
        return process.stdout.read()
