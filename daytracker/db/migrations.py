"""Schema bootstrap and versioning."""

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


async def init_database(db: aiosqlite.Connection) -> None:
    """Create every table and index from schema.sql."""
    schema_path = Path(__file__).parent / "schema.sql"
    await db.executescript(schema_path.read_text())


async def run_migrations(db_path: Path | str) -> None:
    """Bring the database at ``db_path`` up to ``SCHEMA_VERSION``.

    The schema is idempotent, so a fresh file and an existing one go through
    the same path; ``user_version`` records what was applied.
    """
    async with aiosqlite.connect(db_path) as db:
        async with db.execute("PRAGMA user_version") as cursor:
            row = await cursor.fetchone()
            version = row[0] if row else 0

        if version > SCHEMA_VERSION:
            raise RuntimeError(
                f"Database schema v{version} is newer than this release (v{SCHEMA_VERSION})"
            )

        await init_database(db)
        if version < SCHEMA_VERSION:
            await db.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
            logger.info(f"Database at {db_path} migrated v{version} -> v{SCHEMA_VERSION}")

        await db.commit()
