"""Database migration runner.

Migrations are SQL scripts applied in order; the schema version lives in
SQLite's `user_version` pragma.
"""

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).parent

# (version, script) pairs, oldest first
MIGRATIONS = [
    (1, "schema.sql"),
]


async def schema_version(db: aiosqlite.Connection) -> int:
    async with db.execute("PRAGMA user_version") as cursor:
        row = await cursor.fetchone()
        return row[0]


async def run_migrations(db_path: Path) -> int:
    """Apply every migration newer than the database's version.

    Returns:
        The schema version after migrating
    """
    async with aiosqlite.connect(db_path) as db:
        version = await schema_version(db)

        for target, script in MIGRATIONS:
            if target <= version:
                continue
            sql = (SCHEMA_DIR / script).read_text()
            await db.executescript(sql)
            # PRAGMA does not accept bound parameters
            await db.execute(f"PRAGMA user_version = {int(target)}")
            await db.commit()
            version = target
            logger.info(f"Applied migration {target} ({script}) to {db_path}")

    return version
