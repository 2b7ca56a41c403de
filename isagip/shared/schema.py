from .db import get_db_connection
import logging

logger = logging.getLogger(__name__)


async def create_tables():
    """Create the document table backing every record collection"""
    schema_sql = """
        -- Records table: one JSON document per (collection, id)
        CREATE TABLE IF NOT EXISTS records (
            collection VARCHAR(50) NOT NULL,
            id VARCHAR(100) NOT NULL,
            data JSONB NOT NULL,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            PRIMARY KEY (collection, id)
        );

        -- Indexes for frequently queried fields
        CREATE INDEX IF NOT EXISTS idx_records_collection ON records (collection);
        CREATE INDEX IF NOT EXISTS idx_records_status ON records (collection, (data->>'status'));
    """
    try:
        async with get_db_connection() as conn:
            async with conn.transaction():
                await conn.execute(schema_sql)
                logger.info("Database tables and indexes created successfully.")
    except Exception as e:
        logger.error(f"Error creating tables: {str(e)}")
        raise
