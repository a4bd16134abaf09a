"""
pygherrit: one GitHub pull request per local commit, kept in sync on every push.
"""
import logging
import sys
from typing import IO, Optional

LOG_FORMAT = '%(asctime)s.%(msecs)03d [%(levelname)s] %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

def setup_logging(verbose: int = 0, stream: Optional[IO[str]] = None) -> None:
    """Point the root logger at stderr.

    Git and GitHub calls are logged at INFO, so they show without any flag.
    Two or more -v switch to DEBUG, which adds per-commit allocation and
    ref planning detail.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose >= 2 else logging.INFO)

    # Replace whatever handlers were installed before us
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
    root.addHandler(handler)

setup_logging()
