"""Database schema migrations."""

from __future__ import annotations

import logging

import aiosqlite

from wattly.db.models import SCHEMA_VERSION, TABLES

logger = logging.getLogger(__name__)


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create the schema on a fresh database or bring an older one up to date."""
    current = await _get_current_version(db)

    if current == 0:
        logger.info("Creating database schema (version %d)", SCHEMA_VERSION)
        for statement in TABLES:
            await db.execute(statement)
        await db.execute(
            "INSERT OR REPLACE INTO schema_version (id, version) VALUES (1, ?)",
            (SCHEMA_VERSION,),
        )
        await db.commit()
        logger.info("Schema created successfully")
    elif current < SCHEMA_VERSION:
        logger.info("Migrating database from version %d to %d", current, SCHEMA_VERSION)
        for version in range(current + 1, SCHEMA_VERSION + 1):
            for statement in MIGRATIONS.get(version, []):
                await db.execute(statement)
        await db.execute(
            "UPDATE schema_version SET version = ? WHERE id = 1",
            (SCHEMA_VERSION,),
        )
        await db.commit()
        logger.info("Migration complete")
    elif current > SCHEMA_VERSION:
        raise RuntimeError(
            f"Database schema version {current} is newer than this release ({SCHEMA_VERSION})"
        )
    else:
        logger.debug("Database schema is up to date (version %d)", current)


# Statements to run when upgrading *to* the keyed version.
MIGRATIONS: dict[int, list[str]] = {}


async def _get_current_version(db: aiosqlite.Connection) -> int:
    """Get current schema version, returns 0 if table doesn't exist."""
    try:
        async with db.execute("SELECT version FROM schema_version WHERE id = 1") as cursor:
            row = await cursor.fetchone()
            return row[0] if row else 0
    except aiosqlite.OperationalError:
        return 0
