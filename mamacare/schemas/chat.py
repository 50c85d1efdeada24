"""Chat request and answer schemas.

Defines the inbound ChatRequest, the ParsedResponse produced by the
chunk parser, and the CommittedAnswer handed to persistence once a
question's answer becomes authoritative.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Language(StrEnum):
    """Languages the assistant can answer in."""

    ENGLISH = "en"
    SWAHILI = "sw"
    LUGANDA = "lg"
    RUNYANKORE = "ru"


class Platform(StrEnum):
    """Client platform submitting the question."""

    WEB = "web"
    MOBILE = "mobile"


LANGUAGE_NAMES: dict[Language, str] = {
    Language.ENGLISH: "English",
    Language.SWAHILI: "Swahili",
    Language.LUGANDA: "Luganda",
    Language.RUNYANKORE: "Runyankore",
}

# Maximum number of suggested follow-up questions per platform
_SUGGESTION_LIMITS: dict[Platform, int] = {
    Platform.WEB: 3,
    Platform.MOBILE: 4,
}


def suggestion_limit(platform: Platform) -> int:
    """Return the suggestion cap for a client platform."""
    return _SUGGESTION_LIMITS[platform]


class ChatRequest(BaseModel):
    """A single question submission. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    question: str = Field(min_length=1, description="The user's question")
    language: Language = Field(description="Language the answer must be written in")
    platform: Platform = Field(default=Platform.WEB, description="Submitting platform")

    @field_validator("question")
    @classmethod
    def _question_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("question must not be blank")
        return value


class ParsedResponse(BaseModel):
    """Answer and follow-up suggestions extracted from a response buffer."""

    answer: str = Field(default="", description="Answer text without section markers")
    suggested_questions: list[str] = Field(
        default_factory=list,
        description="Ordered follow-up questions, trimmed and non-empty",
    )


class CommittedAnswer(BaseModel):
    """The final, authoritative result for one question."""

    question: str = Field(description="The question as submitted")
    language: Language = Field(description="Answer language")
    answer: str = Field(description="Guarded, sanitized answer text")
    suggestions: list[str] = Field(default_factory=list, description="Follow-up questions")
    fallback: bool = Field(
        default=False, description="True when a local fallback template was committed"
    )
    attempts: int = Field(default=0, ge=0, description="Requests made against the proxy")
    record_id: str | None = Field(
        default=None, description="Identifier returned by persistence, if the write succeeded"
    )
