"""
PATTERN LEXICON - Fixed phrase patterns and weighted word lists for risk scoring

KEY RULES:
1. Everything here is IMMUTABLE (tuples, frozen dataclasses, compiled regexes)
2. Patterns are DETERMINISTIC regexes - no models, no probabilities
3. Any change to a list or weight is a new LEXICON_VERSION

The immediate-risk set must never be narrowed without re-running the crisis
recall corpus in test_risk_engine.py.
"""

import re
from dataclasses import dataclass
from typing import Tuple

LEXICON_VERSION = "2026.02.1"


@dataclass(frozen=True)
class PhrasePattern:
    """Word-boundary phrase pattern. Never reported with its matched text."""
    name: str
    pattern: re.Pattern
    description: str = ""

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


@dataclass(frozen=True)
class WeightedWordList:
    """
    Word list scored as min(count * weight, cap).

    A trigger is reported only when count >= trigger_threshold.
    """
    category: str
    level: str
    pattern_class: str
    words: Tuple[str, ...]
    weight: float
    cap: float
    trigger_threshold: int

    def count_matches(self, normalized_text: str) -> int:
        # Each entry counts once if it occurs anywhere in the text, so
        # "panicking" also counts the entry "panic".
        return sum(1 for word in self.words if word in normalized_text)

    def contribution(self, count: int) -> float:
        if count <= 0:
            return 0.0
        return min(count * self.weight, self.cap)


def _phrase(name: str, regex: str, description: str = "") -> PhrasePattern:
    return PhrasePattern(name=name, pattern=re.compile(regex, re.IGNORECASE), description=description)


# ==============================================================================
# IMMEDIATE RISK - any match is a crisis, bypasses every other stage
# ==============================================================================

IMMEDIATE_RISK_PATTERNS: Tuple[PhrasePattern, ...] = (
    _phrase("suicide", r"\b(suicide|suicidal)\b", "Explicit suicide language"),
    _phrase("kill_self", r"\b(kill myself|kill my self)\b", "Intent to kill self"),
    _phrase("end_life", r"\b(end it all|end my life)\b", "Intent to end life"),
    _phrase("not_live", r"\b(don't want to live|dont want to live)\b", "Not wanting to live"),
    _phrase("want_die", r"\b(want to die|wanna die)\b", "Wanting to die"),
    _phrase("better_dead", r"\b(rather be dead|better off dead)\b", "Better off dead"),
    _phrase("hurt_self", r"\b(hurt myself|harm myself)\b", "Intent to hurt self"),
    _phrase("self_harm", r"\b(self[- ]?harm|cut myself|cutting myself)\b", "Self-harm"),
    _phrase(
        "means",
        r"\b(overdose|take pills|taken pills|stockpiling pills|stockpiled pills)\b",
        "Means language",
    ),
    _phrase("plan", r"\b(plan to (die|end|kill))\b", "Plan language"),
    _phrase("method", r"\b(method to (die|end|kill))\b", "Method language"),
)


# ==============================================================================
# ELEVATED RISK - hopelessness with agency, fixed +0.5
# ==============================================================================

ELEVATED_RISK_PATTERNS: Tuple[PhrasePattern, ...] = (
    _phrase("no_hope", r"\b(no point|no hope|hopeless)\b"),
    _phrase("worthless_burden", r"\b(worthless|i('?m| am) (a )?burden)\b"),
    _phrase("cant_go_on", r"\b(can't go on|cant go on|cannot go on)\b"),
    _phrase("cant_cope", r"\b(can't cope|cant cope|cannot cope)\b"),
    _phrase("cant_take_it", r"\b(can't take it|cant take it)\b"),
    _phrase("giving_up", r"\b(give up|giving up|given up) (on (life|everything|myself))\b"),
    _phrase("no_reason", r"\b(no reason to (live|keep going|continue))\b"),
    _phrase("wish_dead", r"\b(wish i (was|were) dead)\b"),
    _phrase("wish_gone", r"\b(wish i (wasn't|weren't) (here|alive|born))\b"),
)

ELEVATED_RISK_WEIGHT = 0.5


# ==============================================================================
# WEIGHTED WORD LISTS
# ==============================================================================

EMOTIONAL_INTENSITY = WeightedWordList(
    category="emotional_intensity",
    level="medium",
    pattern_class="emotional",
    words=(
        "terrified", "terrifying", "panic", "panicking", "panicked",
        "overwhelming", "overwhelmed", "unbearable", "devastating", "devastated",
        "shattered", "destroyed", "broken", "crushed", "crushing",
        "agonizing", "agony", "torment", "tormented", "despair", "despairing",
        "hopeless", "helpless", "powerless", "trapped", "suffocating",
    ),
    weight=0.1,
    cap=0.3,
    trigger_threshold=2,
)

ABSOLUTIST_LANGUAGE = WeightedWordList(
    category="absolutist_language",
    level="low",
    pattern_class="absolutist",
    words=(
        "never", "always", "nothing", "everything", "nobody", "everyone",
        "impossible", "completely", "totally", "entirely", "absolutely",
        "forever", "none", "all", "worst",
    ),
    weight=0.05,
    cap=0.2,
    trigger_threshold=3,
)

HOPELESSNESS = WeightedWordList(
    category="hopelessness",
    level="medium",
    pattern_class="hopelessness",
    words=(
        "pointless", "meaningless", "useless", "empty", "hollow",
        "numb", "disconnected", "alone", "isolated", "abandoned",
        "failed", "failure", "failing", "worthless",
    ),
    weight=0.1,
    cap=0.3,
    trigger_threshold=2,
)

WEIGHTED_WORD_LISTS: Tuple[WeightedWordList, ...] = (
    EMOTIONAL_INTENSITY,
    ABSOLUTIST_LANGUAGE,
    HOPELESSNESS,
)


def normalize(text) -> str:
    """Case-fold and straighten curly apostrophes so "I’m" matches "i'm"."""
    if text is None:
        return ""
    return str(text).replace("’", "'").replace("‘", "'").lower()
