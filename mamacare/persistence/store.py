"""Question store: the persistence collaborator for committed answers.

Writes one row per committed question and reads them back for the
``history`` CLI. Database errors surface as PersistenceError; the
consumer logs them and carries on with its local result.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Protocol

import aiosqlite

from mamacare.errors import PersistenceError
from mamacare.schemas.chat import Language
from mamacare.schemas.history import QuestionRecord

logger = logging.getLogger(__name__)


class QuestionRecorder(Protocol):
    """Anything that can store a committed answer."""

    async def save_question(
        self,
        question: str,
        language: Language,
        answer: str,
        suggestions: list[str],
    ) -> str:
        """Store a committed answer and return its record identifier."""
        ...


class QuestionStore:
    """Question history backed by SQLite.

    Operates on a connection opened by database.init_db().
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def save_question(
        self,
        question: str,
        language: Language,
        answer: str,
        suggestions: list[str],
    ) -> str:
        """Insert a committed answer and return its record id.

        Raises:
            PersistenceError: If the write fails.
        """
        try:
            cursor = await self._db.execute(
                """
                INSERT INTO questions (question, language, answer, suggestions_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    question,
                    Language(language).value,
                    answer,
                    json.dumps(suggestions, ensure_ascii=False),
                    datetime.now(UTC).isoformat(),
                ),
            )
            await self._db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Could not save question: {e}") from e

        record_id = str(cursor.lastrowid)
        logger.info("Saved question %s", record_id)
        return record_id

    async def get_question(self, record_id: str) -> QuestionRecord | None:
        """Fetch one record by id, or None if it does not exist."""
        if not record_id.isdigit():
            return None
        try:
            async with self._db.execute(
                "SELECT * FROM questions WHERE id = ?", (int(record_id),)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Could not read question {record_id}: {e}") from e
        return _row_to_record(row) if row else None

    async def list_questions(
        self, *, limit: int = 20, language: Language | None = None
    ) -> list[QuestionRecord]:
        """List records, most recent first."""
        sql = "SELECT * FROM questions"
        params: list[object] = []
        if language is not None:
            sql += " WHERE language = ?"
            params.append(Language(language).value)
        sql += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        try:
            async with self._db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Could not list questions: {e}") from e
        return [_row_to_record(row) for row in rows]


def _row_to_record(row: aiosqlite.Row) -> QuestionRecord:
    return QuestionRecord(
        record_id=str(row["id"]),
        question=row["question"],
        language=row["language"],
        answer=row["answer"],
        suggestions=json.loads(row["suggestions_json"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )
