"""
Logging configuration for the command-line driver.

Output goes to stderr to keep stdout clean for the validation report and
import summary.  Library modules only create module-level loggers; handlers
are attached here and nowhere else.
"""

import logging
import sys

# Top-level packages whose loggers the CLI configures.
APP_LOGGERS: tuple[str, ...] = ("processing", "storage", "utils", "ingest")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        verbose: If True, set level to DEBUG
        quiet: If True, set level to WARNING
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)-8s %(name)s: %(message)s"))

    for name in APP_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(level)

        # Avoid duplicate handlers if called multiple times
        logger.handlers.clear()
        logger.addHandler(handler)
        logger.propagate = False
