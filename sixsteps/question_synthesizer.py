"""
QUESTION SYNTHESIZER - Clean-language questions built from the user's own words

DESIGN:
- Questions NEVER introduce new concepts - they only reflect the user's words
- Present tense, minimally assumptive, no probing into trauma
- Iteration 1 uses a fixed opening question per space
- Iterations 2-6 use fixed templates with the reflected phrase as {x}
- Past the limit, the fixed closing (integration) question
- Pure and total: a broken template degrades to FALLBACK_QUESTION, never raises
"""

import logging
import re
from typing import Dict, Optional, Tuple

from .spaces import Space

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 6

PLACEHOLDER = "that"

FALLBACK_QUESTION = "And what else is there?"

CLOSING_QUESTION = "And what do you know now that you didn't know before?"

# {x} = reflected words, {space} = chosen space, {metaphor} = "like ..." fragment
QUESTION_TEMPLATES: Dict[int, Dict[str, Optional[str]]] = {
    2: {
        "primary": "And when {x}, what do you notice?",
        "follow_up": "And where is {x}?",
    },
    3: {
        "primary": "And what kind of {x} is that {x}?",
        "follow_up": "Is there anything else about {x}?",
    },
    4: {
        "primary": "And is there anything else about {x}?",
        "follow_up": "And whereabouts is {x}?",
    },
    5: {
        "primary": "And what does {x} know?",
        "follow_up": "What else is there?",
    },
    6: {
        "primary": "And when {x}, what do you know now?",
        "follow_up": None,
    },
}

OPENING_QUESTIONS: Dict[Space, str] = {
    Space.HERE: "And what do you notice in this present moment?",
    Space.THERE: "And where would you like to be?",
    Space.BEFORE: "And what was life like before?",
    Space.AFTER: "And what has happened since?",
    Space.INSIDE: "And what do you notice in yourself?",
    Space.OUTSIDE: "And what do you notice outside yourself?",
}

# Articles, pronouns, auxiliaries and perception verbs - we want noun phrases
FILLER_WORDS = frozenset("""
    a an the and or but if so when where what how why which
    i me my mine myself you your yours he she it they them its
    is are was were am be been being have has had do does did
    will would could should may might must can
    just very really quite actually kind of sort of
    um uh like well so yeah yes no
    there here this that these those
    im i'm it's that's what's
    notice feel think know see hear want need try
    feeling thinking knowing seeing hearing wanting needing trying
    felt thought knew saw heard wanted needed tried
    going come came get got take took give gave
    make made find found seem look looking seems looked
""".split())

_PUNCTUATION = re.compile(r"[.,!?;:'\"()\[\]{}]")
_WHITESPACE = re.compile(r"\s+")
_METAPHOR = re.compile(r"like\s+(?:a\s+)?(.+?)(?:\.|,|$)", re.IGNORECASE)


def _space_name(space) -> str:
    try:
        return Space(space).value
    except (TypeError, ValueError):
        return Space.HERE.value


def extract_key_phrase(text: Optional[str]) -> Optional[str]:
    """
    Last one or two significant words of the text, or None.

    "I notice a heaviness in my chest" -> "heaviness chest"
    """
    if not text or not str(text).strip():
        return None

    cleaned = _PUNCTUATION.sub(" ", str(text).replace("’", "'").lower())
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()

    words = [w for w in cleaned.split(" ") if len(w) >= 3 and w not in FILLER_WORDS]
    if not words:
        return None
    return " ".join(words[-2:])


def extract_metaphor(text: Optional[str]) -> Optional[str]:
    """'It's like a heavy stone.' -> 'heavy stone'"""
    if not text:
        return None
    match = _METAPHOR.search(str(text))
    if not match:
        return None
    fragment = match.group(1).strip()
    return fragment or None


class QuestionSynthesizer:
    """Stateless; every method is a pure function of its arguments"""

    def opening_question(self, space) -> str:
        try:
            return OPENING_QUESTIONS[Space(space)]
        except (TypeError, ValueError):
            return f"And when {_space_name(space)}, what do you notice?"

    def closing_question(self) -> str:
        return CLOSING_QUESTION

    def next_question(self, iteration_number: int, space, prior_text: Optional[str]) -> str:
        question, _ = self.next_question_with_phrase(iteration_number, space, prior_text)
        return question

    def next_question_with_phrase(
        self, iteration_number: int, space, prior_text: Optional[str]
    ) -> Tuple[str, Optional[str]]:
        """Returns (question, reflected phrase) so callers can cache the phrase"""
        if iteration_number > MAX_ITERATIONS:
            return self.closing_question(), None

        reflected = extract_key_phrase(prior_text)
        if iteration_number <= 1:
            return self.opening_question(space), reflected

        template = QUESTION_TEMPLATES.get(iteration_number, {}).get("primary")
        return self._build(template, space, reflected, prior_text), reflected

    def follow_up_question(self, iteration_number: int, space, prior_text: Optional[str]) -> Optional[str]:
        template = QUESTION_TEMPLATES.get(iteration_number, {}).get("follow_up")
        if not template:
            return None
        return self._build(template, space, extract_key_phrase(prior_text), prior_text)

    def _build(self, template: Optional[str], space, reflected: Optional[str], prior_text: Optional[str]) -> str:
        substitutions = {
            "x": reflected or PLACEHOLDER,
            "space": _space_name(space),
            "metaphor": extract_metaphor(prior_text) or reflected or PLACEHOLDER,
        }
        try:
            return template.format(**substitutions)
        except (AttributeError, KeyError, IndexError, ValueError) as e:
            logger.warning(f"Question substitution failed: {type(e).__name__}")
            return FALLBACK_QUESTION


# Singleton instance
question_synthesizer = QuestionSynthesizer()
