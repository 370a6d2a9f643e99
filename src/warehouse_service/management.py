"""Utility helpers for administrative tasks."""
from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from . import models  # noqa: F401  (registers tables on Base.metadata)
from .config import get_settings
from .database import Base, engine
from .log import configure_logging

logger = logging.getLogger(__name__)


async def init_database(db_engine: AsyncEngine | None = None) -> None:
    """Create database tables for the application."""

    engine_to_use = db_engine or engine
    async with engine_to_use.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created on %s", engine_to_use.url)


def cli_init_database() -> None:
    """CLI wrapper executed from :mod:`python -m`."""

    configure_logging(level=get_settings().log_level)
    asyncio.run(init_database())


if __name__ == "__main__":
    cli_init_database()
