"""Post-hoc safety gate for assembled answers.

guard() is applied once to a complete answer. A denylisted phrase may
straddle chunk boundaries, so individual chunks are never checked.
"""

from __future__ import annotations

import logging
import re

from mamacare.schemas.chat import Language

logger = logging.getLogger(__name__)

# Phrase patterns grouped by the kind of unsafe guidance they signal.
# Each pattern is matched case-insensitively from a word boundary.
DENYLIST: dict[str, tuple[str, ...]] = {
    "dosage": (
        r"dosage",
        r"take \d+(?:\.\d+)?\s*(?:mg|milligrams?|pills?|tablets?|capsules?)",
        r"take x pills",
        r"specific medication",
    ),
    "replaces_care": (
        r"without consulting",
        r"instead of medical",
        r"without (?:a |your )?doctor",
        r"no need to see a doctor",
    ),
    "absolute_claim": (
        r"cure",
        r"guaranteed",
        r"permanent",
    ),
}

_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (category, re.compile(rf"\b{phrase}", re.IGNORECASE))
    for category, phrases in DENYLIST.items()
    for phrase in phrases
]

DISCLAIMERS: dict[Language, str] = {
    Language.ENGLISH: (
        "I apologize, but I cannot provide specific medical advice or medication "
        "instructions. Please consult with a qualified healthcare provider for "
        "personalized recommendations regarding your health and pregnancy."
    ),
    Language.SWAHILI: (
        "Samahani, lakini siwezi kutoa ushauri maalum wa matibabu au maagizo ya dawa. "
        "Tafadhali wasiliana na mtoa huduma za afya wenye sifa kwa mapendekezo ya "
        "kibinafsi kuhusu afya yako na ujauzito."
    ),
    Language.LUGANDA: (
        "Nsonyiwa, naye sisobola kuwa amagezi agenjawulo ag'eby'obulamu wadde okulagira "
        "eddagala. Tusaba mubuuze omusawo omuyigirize okufuna amagezi agenjawulo "
        "agakwata ku by'obulamu bwo n'olubuto lwo."
    ),
    Language.RUNYANKORE: (
        "Nimbesimire, kwonka tinsobora kukuha enaama erikwiine obwengye bw'eby'amagara "
        "nari entekateeka y'emiringo y'okumira emirago. Nooshabwa kukwatagana "
        "n'omushaaho ow'obwengye bw'eby'amagara kukuha ebiteekateeko byawe ebikwatiine "
        "n'amagara gaawe n'enda yaawe."
    ),
}


def find_violation(answer: str) -> str | None:
    """Return the category of the first denylisted phrase in ``answer``, if any."""
    for category, pattern in _PATTERNS:
        if pattern.search(answer):
            return category
    return None


def disclaimer(language: Language) -> str:
    """Return the fixed safety disclaimer for ``language``."""
    return DISCLAIMERS.get(language, DISCLAIMERS[Language.ENGLISH])


def guard(answer: str, language: Language) -> str:
    """Return ``answer`` unchanged, or the disclaimer if it contains unsafe guidance."""
    category = find_violation(answer)
    if category is None:
        return answer
    logger.info("Safety gate substituted answer (category=%s)", category)
    return disclaimer(language)
