"""Question history schemas.

Defines the QuestionRecord returned by the question store for listing
and display.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from mamacare.schemas.chat import Language


class QuestionRecord(BaseModel):
    """A persisted committed answer."""

    record_id: str = Field(description="Store-assigned identifier")
    question: str = Field(description="The question as submitted")
    language: Language = Field(description="Answer language")
    answer: str = Field(description="Committed answer text")
    suggestions: list[str] = Field(default_factory=list, description="Follow-up questions")
    created_at: datetime = Field(description="When the record was written")
