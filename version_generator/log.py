"""Logging helpers.

Library modules log through ``logger``; only the CLI installs a handler, and
it writes to stderr so stdout stays reserved for the generated version.
"""

from __future__ import annotations

import logging

logger = logging.getLogger("version_generator")


def configure_logging(verbose: bool = False) -> None:
    """Send version_generator records to stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%H:%M:%S",
    )


def step(msg: str) -> None:
    """Log a visually distinct step header.

    Used to separate the phases of a run (tag lookup, platform queries).
    """
    logger.info("%s %s", "─" * 4, msg)
