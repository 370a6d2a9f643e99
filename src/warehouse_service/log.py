"""Logging setup shared by the API and CLI entry points."""
from __future__ import annotations

import logging


def configure_logging(*, level: int | str = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger with a terse single-line format.

    Pass ``force=True`` to reconfigure handlers that were installed earlier,
    e.g. by the test runner.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )


__all__ = ["configure_logging"]
