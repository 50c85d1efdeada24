"""Prompt template loader.

Loads Markdown prompt templates from the prompts/ directory and renders
them with Jinja2 variable substitution. The proxy uses build_prompt()
to produce the single instruction string sent upstream.
"""

from __future__ import annotations

from pathlib import Path

from jinja2 import BaseLoader, Environment

from mamacare.schemas.chat import LANGUAGE_NAMES, Language, Platform, suggestion_limit

# Directory containing the .md prompt template files
_PROMPTS_DIR = Path(__file__).parent

ANSWER_TEMPLATE = "answer"


def render_prompt(template_name: str, **variables: object) -> str:
    """Load a prompt template and render it with Jinja2 variables.

    Args:
        template_name: Name of the template file (without .md extension).
                       Must correspond to a file in the prompts/ directory.
        **variables: Template variables to inject.

    Returns:
        The fully rendered prompt string.

    Raises:
        FileNotFoundError: If the template file does not exist.
    """
    path = _PROMPTS_DIR / f"{template_name}.md"
    if not path.exists():
        raise FileNotFoundError(f"Prompt template not found: {path}")

    template_text = path.read_text(encoding="utf-8")

    # Undefined variables render as empty strings
    env = Environment(loader=BaseLoader(), keep_trailing_newline=True)
    template = env.from_string(template_text)
    return template.render(**variables)


def build_prompt(question: str, language: Language, platform: Platform = Platform.WEB) -> str:
    """Build the upstream instruction prompt for one question.

    Deterministic: the same inputs always produce the same string.
    """
    return render_prompt(
        ANSWER_TEMPLATE,
        question=question.strip(),
        language_name=LANGUAGE_NAMES[language],
        platform=platform.value,
        suggestion_count=suggestion_limit(platform),
    )
