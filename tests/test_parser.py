"""Tests for mamacare.parser: ANSWER / SUGGESTED_QUESTIONS extraction."""

from __future__ import annotations

from mamacare.parser import (
    ANSWER_MARKER,
    SUGGESTIONS_MARKER,
    extract_answer,
    extract_suggestions,
    parse,
    sanitize_delta,
    sanitize_final,
)

_FULL = (
    "ANSWER: Eat plenty of leafy greens and drink water.\n\n"
    "SUGGESTED_QUESTIONS:\n"
    "1. What vitamins should I take?\n"
    "2. How much weight should I gain?\n"
    "3. What exercises are safe?\n"
    "4. When should I see a doctor?"
)


# ── parse ─────────────────────────────────────────────────────


class TestParse:
    def test_full_response(self):
        result = parse(_FULL, 4)
        assert result.answer == "Eat plenty of leafy greens and drink water."
        assert result.suggested_questions == [
            "What vitamins should I take?",
            "How much weight should I gain?",
            "What exercises are safe?",
            "When should I see a doctor?",
        ]

    def test_idempotent(self):
        assert parse(_FULL, 3) == parse(_FULL, 3)

    def test_web_limit_caps_suggestions(self):
        result = parse(_FULL, 3)
        assert len(result.suggested_questions) == 3
        assert result.suggested_questions[-1] == "What exercises are safe?"

    def test_no_suggestions_marker_yields_empty_list(self):
        result = parse("ANSWER: Rest and stay hydrated.", 3)
        assert result.answer == "Rest and stay hydrated."
        assert result.suggested_questions == []

    def test_no_markers_uses_whole_buffer(self):
        result = parse("  Rest and stay hydrated.  ", 3)
        assert result.answer == "Rest and stay hydrated."
        assert result.suggested_questions == []

    def test_missing_answer_marker_stops_at_suggestions(self):
        buf = "Rest well.\nSUGGESTED_QUESTIONS:\n1. Is napping fine?"
        result = parse(buf, 3)
        assert result.answer == "Rest well."
        assert result.suggested_questions == ["Is napping fine?"]

    def test_answer_never_contains_markers(self):
        result = parse(_FULL, 4)
        assert ANSWER_MARKER not in result.answer
        assert SUGGESTIONS_MARKER not in result.answer

    def test_empty_buffer(self):
        result = parse("", 3)
        assert result.answer == ""
        assert result.suggested_questions == []

    def test_latest_answer_section_wins(self):
        buf = (
            "ANSWER: Folic acid helps neural tubeformationand"
            "ANSWER: I'm experiencing some technical difficulties.\n"
            "SUGGESTED_QUESTIONS:\n1. What foods are safe?"
        )
        result = parse(buf, 3)
        assert result.answer == "I'm experiencing some technical difficulties."
        assert result.suggested_questions == ["What foods are safe?"]


# ── Incremental parsing ──────────────────────────────────────


class TestIncremental:
    def test_partial_answer_before_suggestions(self):
        assert extract_answer("ANSWER: Drink wa") == "Drink wa"

    def test_growing_buffer_keeps_earlier_suggestions(self):
        prefixes = [
            "ANSWER: Hi\nSUGGESTED_QUESTIONS:\n1. What is",
            "ANSWER: Hi\nSUGGESTED_QUESTIONS:\n1. What is prenatal care?\n2",
            "ANSWER: Hi\nSUGGESTED_QUESTIONS:\n1. What is prenatal care?\n2. When",
        ]
        results = [extract_suggestions(p, 3) for p in prefixes]
        assert results[0] == ["What is"]
        assert results[1] == ["What is prenatal care?"]
        assert results[2] == ["What is prenatal care?", "When"]

    def test_marker_just_arrived(self):
        buf = "ANSWER: Hi\nSUGGESTED_QUESTIONS:"
        assert extract_answer(buf) == "Hi"
        assert extract_suggestions(buf, 3) == []


# ── Suggestion splitting ─────────────────────────────────────


class TestSuggestions:
    def test_blank_items_are_dropped(self):
        buf = "SUGGESTED_QUESTIONS:\n1.   \n2. Real question?\n3.\n"
        assert extract_suggestions(buf, 4) == ["Real question?"]

    def test_digit_only_items_are_dropped(self):
        buf = "SUGGESTED_QUESTIONS:\n1. First?\n2. 3\n"
        assert extract_suggestions(buf, 4) == ["First?"]

    def test_preamble_is_kept(self):
        buf = "SUGGESTED_QUESTIONS: Is it safe to fly?\n1. Can I travel?"
        assert extract_suggestions(buf, 4) == ["Is it safe to fly?", "Can I travel?"]

    def test_items_are_trimmed(self):
        buf = "SUGGESTED_QUESTIONS:\n  1.    Spaced out?   \n 2. Next?"
        assert extract_suggestions(buf, 4) == ["Spaced out?", "Next?"]

    def test_zero_limit(self):
        assert extract_suggestions(_FULL, 0) == []

    def test_multi_digit_numbers(self):
        items = "\n".join(f"{n}. Question {n}?" for n in range(9, 12))
        buf = f"SUGGESTED_QUESTIONS:\n{items}"
        assert extract_suggestions(buf, 4) == ["Question 9?", "Question 10?", "Question 11?"]


# ── Sanitize ─────────────────────────────────────────────────


class TestSanitize:
    def test_nbsp_becomes_space(self):
        assert sanitize_delta("a\u00a0b") == "a b"

    def test_space_runs_collapse_to_two(self):
        assert sanitize_delta("a     b") == "a  b"

    def test_two_spaces_left_alone(self):
        assert sanitize_delta("a  b") == "a  b"

    def test_newlines_and_punctuation_preserved(self):
        text = "Line one.\n\n- item: yes!\n"
        assert sanitize_delta(text) == text

    def test_empty(self):
        assert sanitize_delta("") == ""

    def test_final_caps_newline_runs_and_trims(self):
        assert sanitize_final("  one\n\n\n\n\n\ntwo  ") == "one\n\n\ntwo"

    def test_final_applies_delta_rules(self):
        assert sanitize_final("a\u00a0   b") == "a  b"
