"""Question history persistence.

SQLite-backed storage for committed answers.
"""

from mamacare.persistence.database import close_db, init_db
from mamacare.persistence.store import QuestionRecorder, QuestionStore

__all__ = [
    "QuestionRecorder",
    "QuestionStore",
    "close_db",
    "init_db",
]
