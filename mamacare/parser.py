"""Incremental parser for the two-section ANSWER / SUGGESTED_QUESTIONS format.

parse() is pure and is called repeatedly against a growing buffer: by
the client on every received event to refresh its preview, and by the
proxy once the upstream stream has ended. Extraction is best-effort.
When the model drifts from the format, the whole text becomes the answer.
"""

from __future__ import annotations

import re

from mamacare.schemas.chat import ParsedResponse

ANSWER_MARKER = "ANSWER:"
SUGGESTIONS_MARKER = "SUGGESTED_QUESTIONS:"

# Start of a numbered list item: "1.", " 2. ", "10."
_ITEM_SPLIT = re.compile(r"^\s*\d+\.\s*", re.MULTILINE)
_DIGITS_ONLY = re.compile(r"^\d+\.?$")
# A next item number that has arrived without its dot yet
_TRAILING_NUMBER = re.compile(r"\n\s*\d+$")

_NBSP = "\u00a0"
_SPACE_RUN = re.compile(r" {3,}")
_NEWLINE_RUN = re.compile(r"\n{4,}")


def parse(buffer: str, limit: int) -> ParsedResponse:
    """Extract the answer and up to ``limit`` suggestions from ``buffer``."""
    return ParsedResponse(
        answer=extract_answer(buffer),
        suggested_questions=extract_suggestions(buffer, limit),
    )


def _section_start(buffer: str) -> int:
    """Offset just past the last ``ANSWER:`` marker, or 0 without one.

    A fallback answer streamed after a corrupted partial answer starts a
    fresh ANSWER section, and the latest section is the one that counts.
    """
    idx = buffer.rfind(ANSWER_MARKER)
    return 0 if idx == -1 else idx + len(ANSWER_MARKER)


def extract_answer(buffer: str) -> str:
    """Return the answer section without markers.

    The answer runs from just after ``ANSWER:`` to ``SUGGESTED_QUESTIONS:``
    or the end of the buffer. Without ``ANSWER:`` everything before the
    suggestions marker is the answer.
    """
    start = _section_start(buffer)
    end = buffer.find(SUGGESTIONS_MARKER, start)
    if end == -1:
        end = len(buffer)
    return buffer[start:end].strip()


def extract_suggestions(buffer: str, limit: int) -> list[str]:
    """Return the numbered follow-up questions, trimmed and capped at ``limit``."""
    idx = buffer.find(SUGGESTIONS_MARKER, _section_start(buffer))
    if idx == -1 or limit <= 0:
        return []

    section = buffer[idx + len(SUGGESTIONS_MARKER):]
    suggestions: list[str] = []
    for item in _ITEM_SPLIT.split(section):
        item = _TRAILING_NUMBER.sub("", item.strip()).strip()
        if not item or _DIGITS_ONLY.match(item):
            continue
        suggestions.append(item)
        if len(suggestions) == limit:
            break
    return suggestions


def sanitize_delta(text: str) -> str:
    """Light display cleanup for a single delta.

    Non-breaking spaces become spaces and runs of three or more spaces
    collapse to two. Newlines and punctuation are left alone.
    """
    if not text:
        return ""
    return _SPACE_RUN.sub("  ", text.replace(_NBSP, " "))


def sanitize_final(text: str) -> str:
    """Cleanup applied once to a committed answer."""
    text = sanitize_delta(text)
    return _NEWLINE_RUN.sub("\n\n\n", text).strip()
