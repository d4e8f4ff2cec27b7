"""Create the database schemas and tables the timetable service needs (development bootstrap)."""

import logging
from typing import Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

# Ensure all models are registered on Base.metadata
import schoolerp.core.models  # noqa: F401
import schoolerp.auth.models  # noqa: F401
from schoolerp.db.session import Base

logger = logging.getLogger(__name__)


CREATE_SCHEMA_SQL: Dict[str, str] = {
    "core": "CREATE SCHEMA IF NOT EXISTS core;",
    "auth": "CREATE SCHEMA IF NOT EXISTS auth;",
    "school": "CREATE SCHEMA IF NOT EXISTS school;",
}


async def ensure_schema(engine: AsyncEngine) -> None:
    """Create missing schemas (PostgreSQL only) and tables. Existing tables are left untouched."""
    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            for schema, sql in CREATE_SCHEMA_SQL.items():
                await conn.execute(text(sql))
                logger.debug("Ensured schema %s", schema)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema is up to date")
