"""Logging setup for the gid command line."""
from __future__ import annotations

import logging
import sys


def setup_logging(level: int = logging.WARNING) -> logging.Logger:
    logger = logging.getLogger("gid")
    if logger.handlers:
        logger.setLevel(level)
        return logger  # already configured
    logger.setLevel(level)
    # stdout is reserved for command output
    handler = logging.StreamHandler(sys.stderr)
    fmt = logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    handler.setFormatter(fmt)
    logger.addHandler(handler)
    return logger
