"""SQLite database layer for question history.

Manages the connection and schema. Uses aiosqlite for async access with
WAL mode so the CLI can read history while a server is writing.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS questions (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    question         TEXT NOT NULL,
    language         TEXT NOT NULL,
    answer           TEXT NOT NULL,
    suggestions_json TEXT NOT NULL DEFAULT '[]',
    created_at       TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_questions_created ON questions(created_at);
"""


async def init_db(db_path: str) -> aiosqlite.Connection:
    """Open the database and create tables if needed.

    Args:
        db_path: Path to the SQLite database file. Supports ~ expansion.

    Returns:
        An open aiosqlite connection ready for use.
    """
    resolved = Path(db_path).expanduser()
    resolved.parent.mkdir(parents=True, exist_ok=True)

    db = await aiosqlite.connect(str(resolved))
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await db.executescript(_SCHEMA)
    await db.commit()

    logger.info("Question database initialized at %s", resolved)
    return db


async def close_db(db: aiosqlite.Connection) -> None:
    """Close the database connection."""
    await db.close()
