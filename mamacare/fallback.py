"""Canned fallback answers and contextual follow-up suggestions.

Used when the live pipeline cannot produce a trustworthy answer: the
proxy streams these when the upstream is unavailable or corrupted, and
the client commits them when its retries are exhausted. Nothing here
calls the model.
"""

from __future__ import annotations

from collections.abc import Iterator

from mamacare.parser import extract_answer, sanitize_final
from mamacare.schemas.chat import Language

# ── Contextual suggestions ──────────────────────────────────────────

# (keywords, questions) in match order; the first category whose
# keyword appears in the lowercased question wins
_CATEGORIES: list[tuple[tuple[str, ...], list[str]]] = [
    (
        ("diet", "food", "eat", "nutrition"),
        [
            "What foods should I avoid during pregnancy?",
            "How much water should I drink while pregnant?",
            "What vitamins should I take during pregnancy?",
            "Is it safe to eat fish during pregnancy?",
        ],
    ),
    (
        ("exercise", "workout", "activity", "movement"),
        [
            "What exercises are safe during pregnancy?",
            "Can I continue my regular workout routine?",
            "How much exercise should I get while pregnant?",
            "What activities should I avoid during pregnancy?",
        ],
    ),
    (
        ("symptom", "pain", "discomfort", "feel"),
        [
            "What are normal pregnancy symptoms?",
            "When should I call my doctor during pregnancy?",
            "How can I manage morning sickness?",
            "What are warning signs during pregnancy?",
        ],
    ),
    (
        ("baby", "fetal", "development", "growth"),
        [
            "How is my baby developing each trimester?",
            "When can I feel my baby move?",
            "What affects fetal development?",
            "How can I bond with my baby before birth?",
        ],
    ),
    (
        ("birth", "labor", "delivery", "contractions"),
        [
            "What are the signs of labor?",
            "How can I prepare for childbirth?",
            "What pain relief options are available during labor?",
            "What should I pack for the hospital?",
        ],
    ),
    (
        ("weight", "gain", "size"),
        [
            "How much weight should I gain during pregnancy?",
            "Is my weight gain on track?",
            "What affects pregnancy weight gain?",
            "How can I maintain a healthy weight during pregnancy?",
        ],
    ),
]

_GENERAL_QUESTIONS = [
    "What should I expect during each trimester?",
    "How often should I have prenatal checkups?",
    "What are the most important things for a healthy pregnancy?",
    "What questions should I ask my doctor?",
]

DEFAULT_SUGGESTIONS: dict[Language, list[str]] = {
    Language.ENGLISH: [
        "What prenatal vitamins should I take?",
        "How often should I have prenatal checkups?",
        "What foods should I avoid during pregnancy?",
        "What are the signs of labor?",
    ],
    Language.SWAHILI: [
        "Ni vitamini gani za ujauzito ninapaswa kumeza?",
        "Ni mara ngapi ninapaswa kupata ukaguzi wa kabla ya kuzaa?",
        "Ni vyakula gani ninapaswa kuepuka wakati wa ujauzito?",
        "Ni dalili zipi za uchungu wa kuzaa?",
    ],
    Language.LUGANDA: [
        "Vitamini ki ez'obulwadde ez'abakazi abazito ze nnina okumira?",
        "Emirundi emeka gye nnina okukebezebwa ng'ennina olubuto?",
        "Emmere ki gye nnina okwewala nga nnina olubuto?",
        "Bubonero ki obulaga nti okuzaala kusembedde?",
    ],
    Language.RUNYANKORE: [
        "Vitamini ki eziragiirwa abakazi abazito?",
        "Ninteekwa kukyalira omushawo emirundi engahi obu ndaaba nzito?",
        "Ebyokurya ki ebi nshemereire kweshaasha obundaba nyizire?",
        "Bumanyiso ki obwokuzaara?",
    ],
}


def default_suggestions(language: Language) -> list[str]:
    """Return the general follow-up list for ``language``."""
    return list(DEFAULT_SUGGESTIONS.get(language, DEFAULT_SUGGESTIONS[Language.ENGLISH]))


def contextual_suggestions(question: str, language: Language, limit: int) -> list[str]:
    """Pick follow-up questions by keyword category, capped at ``limit``.

    Keyword categories are English. Other languages get their general list.
    """
    if language is not Language.ENGLISH:
        return default_suggestions(language)[:limit]

    lowered = question.lower()
    for keywords, questions in _CATEGORIES:
        if any(keyword in lowered for keyword in keywords):
            return questions[:limit]
    return _GENERAL_QUESTIONS[:limit]


# ── Fallback answers ────────────────────────────────────────────────

_LOCALIZED_FALLBACKS: dict[Language, str] = {
    Language.ENGLISH: """ANSWER: I apologize, but I'm having trouble connecting to my knowledge base right now. Your question was about "{question}".

Please try again in a moment. If you're experiencing a medical emergency, please contact your healthcare provider immediately or go to the nearest emergency room.

IMPORTANT: This is an AI assistant providing educational information only and is not a substitute for professional medical advice.

SUGGESTED_QUESTIONS:
1. What is prenatal care?
2. What vitamins should I take during pregnancy?
3. How often should I visit my doctor during pregnancy?""",
    Language.SWAHILI: """ANSWER: Samahani, nina shida ya kuunganisha na hifadhidata yangu kwa sasa. Swali lako lilikuwa kuhusu "{question}".

Tafadhali jaribu tena baada ya muda mfupi. Ikiwa una dharura ya matibabu, tafadhali wasiliana na mtoa huduma za afya mara moja au uende katika chumba cha dharura cha karibu.

MUHIMU: Hii ni programu ya AI inayotoa taarifa za kielimu pekee na sio mbadala wa ushauri wa kitaalamu wa matibabu.

SUGGESTED_QUESTIONS:
1. Huduma ya kabla ya kuzaa ni nini?
2. Ni vitamini gani ninapaswa kumeza wakati wa ujauzito?
3. Ni mara ngapi ninapaswa kumtembelea daktari wakati wa ujauzito?""",
    Language.LUGANDA: """ANSWER: Nsonyiwa, ndi mu buzibu okuyunga ku ttaka lyange ery'okumanya mu kiseera kino. Ekibuuzo kyo kyali kikwata ku "{question}".

Nsaba oddemu oluvannyuma. Bwoba nga olina embeera y'obulwadde eyeetaagisa obuyambi bwangu, tusaba weetaagise omusawo wo mangu oba ogendera ku ddwaliro eririkiririramu.

KIKULU: Eno nkola ya kompyuta eyigiriza era tennaba kuddira kifo kya kubudaabudibwa kwa basawo bakugu.

SUGGESTED_QUESTIONS:
1. Obujjanjabi bw'abakazi abazito kye ki?
2. Vitamini ki ze nnina okumira nga ndi lubuto?
3. Emirundi emeka gye nnina okukyalira omusawo nga ndi lubuto?""",
    Language.RUNYANKORE: """ANSWER: Nimbesimire, ndi omu oburemeezi bw'okukoresa amaani gangye g'okumanya hati. Ekibuuzo kyawe kikaba nikikikwata "{question}".

Nooshabwa kugyezaho omurundi ogundi. Ku oraabe noine endwara erikukyetaagisa okutwaara bwangu aha irwariro, shaba kukwatagana n'omushaaho wawe ahonaaho nari kuza aha irwariro eririhereraine.

KIKURU: Eri ni puroguraamu erikukozesebwa kushoborokya kwonka kandi ti nkomwanya gw'okuhabwamu ekiteekateeko ky'eby'amagara okuruga aha bashaaho abarimu.

SUGGESTED_QUESTIONS:
1. Obujanjabi bw'abakaziabaziito niki?
2. Ni vitamini ki zi nshemereire kumira obu ndikuba ndi enda?
3. Ninteekwa kukyalira omusawo emirundi engahi obu ndikuba ndi enda?""",
}

_UNAVAILABLE_EN = """ANSWER: I'm currently experiencing technical difficulties connecting to our AI service. However, I can still provide you with some general prenatal health guidance.

For your question about "{question}", I recommend:
- Consulting with your healthcare provider for personalized medical advice
- Checking reliable medical resources like the American College of Obstetricians and Gynecologists (ACOG)
- Contacting your doctor immediately if you have urgent health concerns

IMPORTANT: This information is for educational purposes only and is not a substitute for professional medical advice. Always consult with your healthcare provider for medical concerns.

SUGGESTED_QUESTIONS:
1. What are the warning signs during pregnancy?
2. How often should I have prenatal checkups?
3. What vitamins should I take during pregnancy?
4. What foods are safe during pregnancy?"""

_DIFFICULTY_EN = """ANSWER: I'm experiencing some technical difficulties right now. Please try asking your question again.

For immediate medical concerns, please contact your healthcare provider directly.

IMPORTANT: This is an AI assistant providing educational information only and is not a substitute for professional medical advice.

SUGGESTED_QUESTIONS:
1. What are the signs of a healthy pregnancy?
2. How often should I have prenatal checkups?
3. What foods should I eat during pregnancy?
4. What exercises are safe during pregnancy?"""


def fallback_answer(language: Language, question: str) -> str:
    """Client-side fallback committed when the proxy cannot be reached."""
    template = _LOCALIZED_FALLBACKS.get(language, _LOCALIZED_FALLBACKS[Language.ENGLISH])
    return template.format(question=question)


def unavailable_answer(language: Language, question: str) -> str:
    """Proxy-side answer streamed when the upstream call cannot start."""
    if language is Language.ENGLISH:
        return _UNAVAILABLE_EN.format(question=question)
    return fallback_answer(language, question)


def difficulty_answer(language: Language, question: str) -> str:
    """Proxy-side answer streamed after the upstream output was found corrupted."""
    if language is Language.ENGLISH:
        return _DIFFICULTY_EN
    return fallback_answer(language, question)


def is_canned_answer(answer: str, language: Language, question: str) -> bool:
    """True when ``answer`` is the ANSWER section of one of the canned answers above.

    The client uses this to recognise a fallback streamed by the proxy,
    which should not be run through the safety gate.
    """
    return any(
        answer == sanitize_final(extract_answer(text))
        for text in (
            fallback_answer(language, question),
            unavailable_answer(language, question),
            difficulty_answer(language, question),
        )
    )


def slice_text(text: str, size: int) -> Iterator[str]:
    """Yield ``text`` in consecutive slices of at most ``size`` characters."""
    for start in range(0, len(text), size):
        yield text[start:start + size]
