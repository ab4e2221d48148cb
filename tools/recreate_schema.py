#!/usr/bin/env python3
"""Recreate the package store schema (DESTRUCTIVE). Drops tables and views then creates them."""
import asyncio
import logging
import sys

from apphub.database import init_engine
from apphub.schema import create_schema, drop_schema
from apphub.settings import settings

logger = logging.getLogger(__name__)


async def run() -> None:
    engine = init_engine()
    try:
        logger.info("Dropping views and tables...")
        await drop_schema(engine)
        logger.info("Creating tables and views...")
        await create_schema(engine)
        logger.info("Schema recreated successfully.")
    except Exception as e:
        print("Error recreating schema:", e, file=sys.stderr)
        raise
    finally:
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level)
    asyncio.run(run())
