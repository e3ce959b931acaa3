"""
Logging configuration for changed-files-ci.

Log records are rendered as GitHub Actions workflow commands so that debug
lines only show up when step debugging is enabled and warnings/errors become
annotations on the run.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, TextIO

LOGGER_NAME = "changed_files_ci"

_PREFIXES = {
    logging.DEBUG: "::debug::",
    logging.WARNING: "::warning::",
    logging.ERROR: "::error::",
    logging.CRITICAL: "::error::",
}


class GithubActionsFormatter(logging.Formatter):
    """Prefix each record with the workflow command for its level."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        prefix = _PREFIXES.get(record.levelno, "")
        if not prefix:
            return message
        # workflow commands end at the first newline
        return "\n".join(f"{prefix}{line}" for line in message.splitlines() or [""])


def setup_logging(verbose: bool = False, stream: TextIO | None = None) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        verbose: Emit DEBUG records
        stream: Destination, defaults to stdout where the runner parses
            workflow commands

    Returns:
        The changed_files_ci logger
    """
    level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(GithubActionsFormatter("%(message)s"))

    logger = logging.getLogger(LOGGER_NAME)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


@contextmanager
def group(name: str, stream: TextIO | None = None) -> Iterator[None]:
    out = stream or sys.stdout
    out.write(f"::group::{name}\n")
    try:
        yield
    finally:
        out.write("::endgroup::\n")
        out.flush()
