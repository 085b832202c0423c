"""
RISK SCORING ENGINE - Deterministic depth score, safety tier and intervention

KEY SAFETY RULES:
1. Depth score is BOUNDED: 0.0-1.0 (always clamped)
2. Immediate-risk language ALWAYS returns 1.0 / crisis, whatever the context
3. Session context and memory are small, CAPPED additions - they can never
   push a turn into crisis on their own
4. Pure function of (text, context): no clock, no randomness, no state
5. Triggers are ANONYMIZED - they never carry user text or matched text

SAFETY TIERS (compliance contract, inclusive lower / exclusive upper):
- [0.0, 0.3): GREEN  - no intervention
- [0.3, 0.5): AMBER  - grounding
- [0.5, 0.7): ORANGE - pause suggested
- [0.7, 0.9): RED    - early integration
- [0.9, 1.0]: CRISIS - crisis protocol

SCORING MATH:
score = clamp(elevated + lexical + session_context + memory, 0.0, 1.0)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .lexicon import (
    ELEVATED_RISK_PATTERNS,
    ELEVATED_RISK_WEIGHT,
    IMMEDIATE_RISK_PATTERNS,
    WEIGHTED_WORD_LISTS,
    normalize,
)


class SafetyTier(str, Enum):
    GREEN = "green"
    AMBER = "amber"
    ORANGE = "orange"
    RED = "red"
    CRISIS = "crisis"


class InterventionType(str, Enum):
    NONE = "none"
    GROUNDING = "grounding"
    PAUSE = "pause"
    INTEGRATION = "integration"
    CRISIS = "crisis"


# Lower bounds, checked top-down. Do NOT change without compliance review.
TIER_THRESHOLDS: Tuple[Tuple[float, SafetyTier], ...] = (
    (0.9, SafetyTier.CRISIS),
    (0.7, SafetyTier.RED),
    (0.5, SafetyTier.ORANGE),
    (0.3, SafetyTier.AMBER),
    (0.0, SafetyTier.GREEN),
)

TIER_INTERVENTIONS: Dict[SafetyTier, InterventionType] = {
    SafetyTier.GREEN: InterventionType.NONE,
    SafetyTier.AMBER: InterventionType.GROUNDING,
    SafetyTier.ORANGE: InterventionType.PAUSE,
    SafetyTier.RED: InterventionType.INTEGRATION,
    SafetyTier.CRISIS: InterventionType.CRISIS,
}

# Session context factors: (per-unit weight, cap)
ITERATION_WEIGHT, ITERATION_CAP = 0.02, 0.12
DURATION_DIVISOR, DURATION_CAP = 150.0, 0.08
GROUNDING_WEIGHT, GROUNDING_CAP = 0.03, 0.05
MEMORY_WEIGHT, MEMORY_CAP = 0.2, 0.15

RESOURCE_THRESHOLD = 0.3

# Scores are rounded to this many decimals at every step so sums such as
# 0.5 + 0.1 + 0.3 land exactly on a band edge
SCORE_PRECISION = 6


def tier_for_score(score: float) -> SafetyTier:
    """Map a depth score onto its safety band"""
    for lower, tier in TIER_THRESHOLDS:
        if score >= lower:
            return tier
    return SafetyTier.GREEN


def intervention_for_tier(tier: SafetyTier) -> InterventionType:
    return TIER_INTERVENTIONS[tier]


def quantize(value: float) -> float:
    return round(value, SCORE_PRECISION)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class Trigger:
    """Anonymized reason a score was raised"""
    category: str
    level: str
    pattern_class: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "category": self.category,
            "level": self.level,
            "pattern_class": self.pattern_class,
        }


@dataclass(frozen=True)
class ScoringContext:
    """Snapshot of the session values the scorer is allowed to see"""
    iteration_count: int = 0
    duration_minutes: float = 0.0
    grounding_count: int = 0
    prior_depth_score: float = 0.0

    @classmethod
    def from_session(cls, session, duration_minutes: float) -> "ScoringContext":
        return cls(
            iteration_count=session.iteration_count,
            duration_minutes=duration_minutes,
            grounding_count=session.grounding_count,
            prior_depth_score=session.depth_score,
        )


@dataclass(frozen=True)
class AssessmentResult:
    depth_score: float
    safety_tier: SafetyTier
    intervention_type: InterventionType
    triggers: Tuple[Trigger, ...] = ()

    @property
    def is_crisis(self) -> bool:
        return self.intervention_type == InterventionType.CRISIS

    @property
    def needs_intervention(self) -> bool:
        return self.intervention_type != InterventionType.NONE

    @property
    def amber_or_higher(self) -> bool:
        return self.depth_score >= RESOURCE_THRESHOLD

    def anonymized_triggers(self) -> List[Dict[str, str]]:
        return [t.to_dict() for t in self.triggers]


IMMEDIATE_RISK_TRIGGER = Trigger("crisis", "immediate_risk", "immediate_risk")
ELEVATED_RISK_TRIGGER = Trigger("elevated_risk", "high", "elevated_risk")


class DepthRiskScorer:
    """
    Deterministic text-risk scorer.

    Stages run in a fixed order and the first one (immediate risk) short
    circuits everything else, so crisis detection can never be diluted by
    session context.
    """

    def __init__(
        self,
        immediate_patterns=IMMEDIATE_RISK_PATTERNS,
        elevated_patterns=ELEVATED_RISK_PATTERNS,
        word_lists=WEIGHTED_WORD_LISTS,
    ):
        self.immediate_patterns = immediate_patterns
        self.elevated_patterns = elevated_patterns
        self.word_lists = word_lists

    def assess(self, text: Optional[str], context: Optional[ScoringContext] = None) -> AssessmentResult:
        context = context or ScoringContext()
        normalized = normalize(text)

        # STAGE 1: immediate risk - return before anything else is considered
        if self._matches_any(normalized, self.immediate_patterns):
            return AssessmentResult(
                depth_score=1.0,
                safety_tier=SafetyTier.CRISIS,
                intervention_type=InterventionType.CRISIS,
                triggers=(IMMEDIATE_RISK_TRIGGER,),
            )

        triggers: List[Trigger] = []
        base_score = 0.0

        # STAGE 2: elevated risk
        if self._matches_any(normalized, self.elevated_patterns):
            base_score = quantize(base_score + ELEVATED_RISK_WEIGHT)
            triggers.append(ELEVATED_RISK_TRIGGER)

        # STAGE 3: weighted lexical counts
        for word_list in self.word_lists:
            count = word_list.count_matches(normalized)
            base_score = quantize(base_score + word_list.contribution(count))
            if count >= word_list.trigger_threshold:
                triggers.append(Trigger(word_list.category, word_list.level, word_list.pattern_class))

        final_score = clamp(quantize(base_score + self.session_factor(context) + self.memory_factor(context)))
        tier = tier_for_score(final_score)

        return AssessmentResult(
            depth_score=final_score,
            safety_tier=tier,
            intervention_type=intervention_for_tier(tier),
            triggers=tuple(triggers),
        )

    @staticmethod
    def session_factor(context: ScoringContext) -> float:
        """Small baseline from session progress (max 0.25 in total)"""
        factor = 0.0
        factor += min(max(context.iteration_count, 0) * ITERATION_WEIGHT, ITERATION_CAP)
        factor += min(max(context.duration_minutes, 0) / DURATION_DIVISOR, DURATION_CAP)
        factor += min(max(context.grounding_count, 0) * GROUNDING_WEIGHT, GROUNDING_CAP)
        return quantize(factor)

    @staticmethod
    def memory_factor(context: ScoringContext) -> float:
        """Damped carry-over of the previous turn's score"""
        return quantize(min(max(context.prior_depth_score, 0.0) * MEMORY_WEIGHT, MEMORY_CAP))

    @staticmethod
    def _matches_any(normalized: str, patterns) -> bool:
        return any(p.matches(normalized) for p in patterns)


# Singleton instance
risk_scorer = DepthRiskScorer()


def assess(text: Optional[str], context: Optional[ScoringContext] = None) -> AssessmentResult:
    return risk_scorer.assess(text, context)
