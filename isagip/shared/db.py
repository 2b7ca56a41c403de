import logging
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg

from . import config

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Shared asyncpg pool behind the postgres record store
db_pool: Optional[asyncpg.Pool] = None


async def init_db(database_url: Optional[str]):
    """Open the pool once at startup; the postgres store needs DATABASE_URL"""
    global db_pool
    if not database_url:
        logger.error("STORE_BACKEND is postgres but DATABASE_URL is not set.")
        raise RuntimeError("DATABASE_URL must be set to use the postgres record store.")

    logger.info(f"Opening record store pool ({config.DB_POOL_MIN_SIZE}-{config.DB_POOL_MAX_SIZE} connections)")
    try:
        db_pool = await asyncpg.create_pool(
            dsn=database_url,
            min_size=config.DB_POOL_MIN_SIZE,
            max_size=config.DB_POOL_MAX_SIZE,
            command_timeout=config.DB_COMMAND_TIMEOUT,
        )
    except (OSError, asyncpg.PostgresError) as e:
        logger.exception(f"Could not open the record store pool: {e}")
        raise
    logger.info("Record store pool ready.")


async def close_db():
    global db_pool
    if db_pool:
        logger.info("Closing record store pool...")
        await db_pool.close()
        db_pool = None


@asynccontextmanager
async def get_db_connection():
    """
    Borrow a connection from the pool for the length of an ``async with`` block.
    A missing pool is reported as OSError so callers treat it like an outage.
    """
    if db_pool is None:
        logger.error("Record store pool is not open. Call init_db() first.")
        raise OSError("Record store pool is not open.")

    conn = await db_pool.acquire()
    try:
        yield conn
    finally:
        await db_pool.release(conn)
