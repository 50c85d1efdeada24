"""Tests for question history persistence.

Covers database initialization, QuestionStore writes and reads,
language filtering, and error translation.
"""

from __future__ import annotations

import pytest

from mamacare.errors import PersistenceError
from mamacare.persistence.database import close_db, init_db
from mamacare.persistence.store import QuestionStore
from mamacare.schemas.chat import Language
from mamacare.schemas.history import QuestionRecord


# ── Database Initialization Tests ─────────────────────────────────


@pytest.mark.asyncio
async def test_init_db_creates_table(tmp_path):
    """init_db creates the questions table in a new database."""
    db = await init_db(str(tmp_path / "test.db"))

    async with db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
    ) as cursor:
        tables = [row[0] for row in await cursor.fetchall()]

    assert "questions" in tables
    await close_db(db)


@pytest.mark.asyncio
async def test_init_db_wal_mode(tmp_path):
    """init_db enables WAL journal mode."""
    db = await init_db(str(tmp_path / "test.db"))

    async with db.execute("PRAGMA journal_mode") as cursor:
        row = await cursor.fetchone()
        assert row[0] == "wal"

    await close_db(db)


@pytest.mark.asyncio
async def test_init_db_creates_parent_dirs(tmp_path):
    """init_db creates parent directories if they don't exist."""
    db = await init_db(str(tmp_path / "nested" / "deep" / "test.db"))
    assert db is not None
    await close_db(db)


@pytest.mark.asyncio
async def test_init_db_idempotent(tmp_path):
    """init_db can be called again on an existing database without losing rows."""
    db_path = str(tmp_path / "test.db")
    db1 = await init_db(db_path)
    await QuestionStore(db1).save_question("Q?", Language.ENGLISH, "A.", [])
    await close_db(db1)

    db2 = await init_db(db_path)
    records = await QuestionStore(db2).list_questions()
    assert len(records) == 1
    await close_db(db2)


# ── QuestionStore Tests ───────────────────────────────────────────


@pytest.mark.asyncio
async def test_save_and_get_question(tmp_path):
    """save_question returns an id that get_question resolves."""
    db = await init_db(str(tmp_path / "test.db"))
    store = QuestionStore(db)

    record_id = await store.save_question(
        "Je, naweza kula samaki?",
        Language.SWAHILI,
        "Ndiyo, samaki wenye zebaki kidogo.",
        ["Ni samaki gani salama?", "Mara ngapi kwa wiki?"],
    )
    record = await store.get_question(record_id)

    assert isinstance(record, QuestionRecord)
    assert record.record_id == record_id
    assert record.question == "Je, naweza kula samaki?"
    assert record.language is Language.SWAHILI
    assert record.answer == "Ndiyo, samaki wenye zebaki kidogo."
    assert record.suggestions == ["Ni samaki gani salama?", "Mara ngapi kwa wiki?"]
    assert record.created_at.tzinfo is not None
    await close_db(db)


@pytest.mark.asyncio
async def test_ids_are_distinct(tmp_path):
    db = await init_db(str(tmp_path / "test.db"))
    store = QuestionStore(db)
    first = await store.save_question("One?", Language.ENGLISH, "A.", [])
    second = await store.save_question("Two?", Language.ENGLISH, "B.", [])
    assert first != second
    await close_db(db)


@pytest.mark.asyncio
async def test_get_question_nonexistent(tmp_path):
    db = await init_db(str(tmp_path / "test.db"))
    store = QuestionStore(db)
    assert await store.get_question("999") is None
    assert await store.get_question("not-a-number") is None
    await close_db(db)


@pytest.mark.asyncio
async def test_list_questions_most_recent_first(tmp_path):
    db = await init_db(str(tmp_path / "test.db"))
    store = QuestionStore(db)
    for n in range(5):
        await store.save_question(f"Question {n}?", Language.ENGLISH, "A.", [])

    records = await store.list_questions(limit=3)
    assert [r.question for r in records] == ["Question 4?", "Question 3?", "Question 2?"]
    await close_db(db)


@pytest.mark.asyncio
async def test_list_questions_language_filter(tmp_path):
    db = await init_db(str(tmp_path / "test.db"))
    store = QuestionStore(db)
    await store.save_question("English?", Language.ENGLISH, "A.", [])
    await store.save_question("Luganda?", Language.LUGANDA, "B.", [])

    records = await store.list_questions(language=Language.LUGANDA)
    assert [r.question for r in records] == ["Luganda?"]
    await close_db(db)


@pytest.mark.asyncio
async def test_write_failure_raises_persistence_error(tmp_path):
    db = await init_db(str(tmp_path / "test.db"))
    await db.execute("DROP TABLE questions")
    store = QuestionStore(db)

    with pytest.raises(PersistenceError, match="Could not save question"):
        await store.save_question("Q?", Language.ENGLISH, "A.", [])
    with pytest.raises(PersistenceError):
        await store.list_questions()
    await close_db(db)
