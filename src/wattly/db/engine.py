"""SQLite database engine with WAL mode for concurrent reads."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from wattly.db.migrations import run_migrations

logger = logging.getLogger(__name__)

_db: aiosqlite.Connection | None = None


async def _check_integrity(db: aiosqlite.Connection) -> list[str]:
    """Run PRAGMA integrity_check and return the reported problems (empty when healthy)."""
    try:
        async with db.execute("PRAGMA integrity_check") as cursor:
            rows = await cursor.fetchall()
    except aiosqlite.DatabaseError as e:
        # Not a database at all (truncated header, foreign file)
        return [str(e)]
    # A healthy DB returns a single row: ("ok",)
    if len(rows) == 1 and str(rows[0][0]).lower() == "ok":
        return []
    return [str(r[0]) for r in rows[:10]]


async def init_db(db_path: str | Path) -> aiosqlite.Connection:
    """Initialise the database connection with WAL mode and run migrations.

    A database that fails the integrity check is never opened for writing:
    invoices and numbering must not be rebuilt from partially readable pages.
    """
    global _db
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    db = await aiosqlite.connect(str(db_path))
    if db_path.stat().st_size > 0:
        problems = await _check_integrity(db)
        if problems:
            await db.close()
            logger.error("Database integrity check failed: %s", "; ".join(problems))
            raise RuntimeError(f"Database {db_path} failed integrity check")

    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA synchronous=FULL")
    await db.execute("PRAGMA foreign_keys=ON")
    await db.execute("PRAGMA busy_timeout=5000")
    db.row_factory = aiosqlite.Row

    try:
        await run_migrations(db)
    except Exception:
        await db.close()
        raise
    _db = db
    logger.info("Database initialised at %s (WAL mode, synchronous=FULL)", db_path)
    return db


async def get_db() -> aiosqlite.Connection:
    """Get the active database connection."""
    if _db is None:
        raise RuntimeError("Database not initialised. Call init_db() first.")
    return _db


async def close_db() -> None:
    """Checkpoint the WAL file and close the connection."""
    global _db
    if _db is not None:
        try:
            await _db.execute("PRAGMA wal_checkpoint(TRUNCATE)")
        except aiosqlite.Error:
            logger.warning("WAL checkpoint failed", exc_info=True)
        await _db.close()
        _db = None
        logger.info("Database connection closed")
