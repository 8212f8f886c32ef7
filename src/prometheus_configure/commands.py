import logging
import os
import subprocess
from typing import Sequence

from .errors import CommandError

logger = logging.getLogger(os.getenv("LOGGER_NAME", "PROMETHEUS_CONFIGURE"))


def run_command(argv: Sequence[str], timeout: int = 60, check: bool = True) -> subprocess.CompletedProcess:
    """
    Run an external zone tool (svcs, svcadm, svccfg, mdata-get) synchronously.

    Output is captured as text. A non-zero exit raises CommandError when
    `check` is set; a missing binary or a timeout always raises CommandError.
    """
    argv = list(argv)
    logger.debug(f"exec: {' '.join(argv)}")
    try:
        result = subprocess.run(argv, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as e:
        raise CommandError(argv, 127, str(e)) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(argv, -1, f"timed out after {timeout}s") from e

    if check and result.returncode != 0:
        raise CommandError(argv, result.returncode, result.stderr or "")
    return result
