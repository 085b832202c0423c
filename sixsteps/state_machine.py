"""
STATE MACHINE - Finite state machine for reflection sessions
Declarative transition table with named guards; illegal events raise.

State Flow:
WELCOME -> SPACE_SELECTION -> EMERGENCE_CYCLE <-> PAUSED
                                   |                |
                                   v                v
                              INTEGRATION ------> COMPLETED
any non-terminal state -> ABANDONED

KEY RULES:
1. Transitions are looked up in a fixed table - nothing is inferred
2. A failed guard or a wrong source state raises IllegalTransition (never a no-op)
3. COMPLETED and ABANDONED are terminal - nothing leaves them
4. apply() returns a NEW Session; the input session is never mutated
"""

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from .errors import IllegalTransition, InvalidSpace
from .spaces import Space, parse_space

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 6
SOFT_TIME_LIMIT_MINUTES = 15
HARD_TIME_LIMIT_MINUTES = 30


class SessionPhase(str, Enum):
    WELCOME = "welcome"
    SPACE_SELECTION = "space_selection"
    EMERGENCE_CYCLE = "emergence_cycle"
    INTEGRATION = "integration"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class SessionEvent(str, Enum):
    GIVE_CONSENT = "give_consent"
    SELECT_SPACE = "select_space"
    CONTINUE_ITERATION = "continue_iteration"
    BEGIN_INTEGRATION = "begin_integration"
    PAUSE = "pause"
    RESUME = "resume"
    RESUME_TO_INTEGRATION = "resume_to_integration"
    COMPLETE = "complete"
    ABANDON = "abandon"


TERMINAL_PHASES = frozenset({SessionPhase.COMPLETED, SessionPhase.ABANDONED})
ACTIVE_PHASES = frozenset({SessionPhase.WELCOME, SessionPhase.SPACE_SELECTION, SessionPhase.EMERGENCE_CYCLE})
NON_TERMINAL_PHASES = frozenset(set(SessionPhase) - TERMINAL_PHASES)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    """One reflection episode. Mutated only through the orchestrator."""
    session_id: str
    owner_id: str
    region: str = "uk"
    state: SessionPhase = SessionPhase.WELCOME
    space: Optional[Space] = None
    iteration_count: int = 0
    depth_score: float = 0.0
    started_at: Optional[datetime] = None
    soft_limit_warned: bool = False
    grounding_count: int = 0
    pending_question: Optional[str] = None
    # Phase the session was in when it was last paused
    paused_from: Optional[SessionPhase] = None
    reflected_words_cache: Optional[str] = None
    summary: Optional[str] = None
    ended_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    version: int = 0

    def copy(self, **changes) -> "Session":
        return replace(self, **changes)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_PHASES

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_PHASES

    def to_dict(self) -> Dict:
        return {
            "session_id": self.session_id,
            "owner_id": self.owner_id,
            "region": self.region,
            "state": self.state.value,
            "space": self.space.value if self.space else None,
            "iteration_count": self.iteration_count,
            "depth_score": self.depth_score,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "soft_limit_warned": self.soft_limit_warned,
            "grounding_count": self.grounding_count,
            "pending_question": self.pending_question,
            "paused_from": self.paused_from.value if self.paused_from else None,
            "summary": self.summary,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "version": self.version,
        }


# ==============================================================================
# LIMITS
# ==============================================================================

def elapsed_minutes(session: Session, now: datetime) -> int:
    """Minutes since the session entered the emergence cycle, rounded half up
    (0 if not started). Finished sessions measure up to ended_at, so the value
    stops moving."""
    if session.started_at is None:
        return 0
    seconds = ((session.ended_at or now) - session.started_at).total_seconds()
    return max(0, int(math.floor(seconds / 60 + 0.5)))


def at_iteration_limit(session: Session) -> bool:
    return session.iteration_count >= MAX_ITERATIONS


def at_time_limit(session: Session, now: datetime) -> bool:
    return elapsed_minutes(session, now) >= HARD_TIME_LIMIT_MINUTES


def should_warn_time_limit(session: Session, now: datetime) -> bool:
    return not session.soft_limit_warned and elapsed_minutes(session, now) >= SOFT_TIME_LIMIT_MINUTES


def can_continue(session: Session, now: datetime) -> bool:
    return not at_iteration_limit(session) and not at_time_limit(session, now)


# ==============================================================================
# TRANSITION TABLE
# ==============================================================================

@dataclass(frozen=True)
class StateTransition:
    """One row of the transition table. condition names a guard (None = unconditional)."""
    event: SessionEvent
    from_states: FrozenSet[SessionPhase]
    to_state: SessionPhase
    condition: Optional[str] = None


def _row(event, from_states, to_state, condition=None) -> StateTransition:
    if isinstance(from_states, SessionPhase):
        from_states = {from_states}
    return StateTransition(event, frozenset(from_states), to_state, condition)


# Order matters: for the same event and source, the first row whose guard holds wins
TRANSITIONS: List[StateTransition] = [
    _row(SessionEvent.GIVE_CONSENT, SessionPhase.WELCOME, SessionPhase.SPACE_SELECTION),
    _row(SessionEvent.SELECT_SPACE, SessionPhase.SPACE_SELECTION, SessionPhase.EMERGENCE_CYCLE, "valid_space"),
    _row(SessionEvent.CONTINUE_ITERATION, SessionPhase.EMERGENCE_CYCLE, SessionPhase.EMERGENCE_CYCLE, "can_continue"),
    _row(SessionEvent.BEGIN_INTEGRATION, SessionPhase.EMERGENCE_CYCLE, SessionPhase.INTEGRATION),
    _row(SessionEvent.PAUSE, {SessionPhase.EMERGENCE_CYCLE, SessionPhase.INTEGRATION}, SessionPhase.PAUSED),
    _row(SessionEvent.RESUME, SessionPhase.PAUSED, SessionPhase.EMERGENCE_CYCLE, "can_continue"),
    _row(SessionEvent.RESUME, SessionPhase.PAUSED, SessionPhase.INTEGRATION),
    _row(SessionEvent.RESUME_TO_INTEGRATION, SessionPhase.PAUSED, SessionPhase.INTEGRATION),
    _row(
        SessionEvent.COMPLETE,
        {SessionPhase.EMERGENCE_CYCLE, SessionPhase.INTEGRATION, SessionPhase.PAUSED},
        SessionPhase.COMPLETED,
    ),
    _row(SessionEvent.ABANDON, NON_TERMINAL_PHASES, SessionPhase.ABANDONED),
]


def next_state(
    current: SessionPhase,
    event: SessionEvent,
    guards: Optional[Dict[str, bool]] = None,
    transitions: List[StateTransition] = TRANSITIONS,
) -> SessionPhase:
    """
    Pure transition function: (state, event, guard inputs) -> new state.
    Raises IllegalTransition when no row applies.
    """
    guards = guards or {}
    failed_guard = None

    for transition in transitions:
        if transition.event != event or current not in transition.from_states:
            continue
        if transition.condition is None or guards.get(transition.condition, False):
            return transition.to_state
        failed_guard = failed_guard or transition.condition

    reason = f"guard '{failed_guard}' failed" if failed_guard else "not allowed from this state"
    raise IllegalTransition(event.value, current.value, reason)


def _guards(session: Session, now: datetime, space=None) -> Dict[str, bool]:
    valid_space = False
    if space is not None:
        try:
            parse_space(space)
            valid_space = True
        except InvalidSpace:
            valid_space = False
    return {
        "can_continue": can_continue(session, now),
        "valid_space": valid_space,
    }


def completion_summary(session: Session, now: datetime, spaces_explored: Optional[int] = None) -> str:
    if spaces_explored is None:
        spaces_explored = 1 if session.space else 0
    return (
        f"Session completed on {now.strftime('%B %d, %Y')}. "
        f"Explored {spaces_explored} space(s). "
        f"Completed {session.iteration_count} reflection(s)."
    )


class SessionStateMachine:
    """Applies table transitions plus their side effects to a Session copy"""

    def __init__(self, transitions: Optional[List[StateTransition]] = None):
        self.transitions = transitions or TRANSITIONS

    def apply(
        self,
        session: Session,
        event: SessionEvent,
        now: datetime,
        space=None,
        spaces_explored: Optional[int] = None,
    ) -> Session:
        if event == SessionEvent.SELECT_SPACE:
            # Raises InvalidSpace before anything is touched
            space = parse_space(space)

        new_state = next_state(session.state, event, _guards(session, now, space), self.transitions)
        updated = session.copy(state=new_state)

        if event == SessionEvent.SELECT_SPACE:
            updated.space = space
            updated.started_at = now
        elif event == SessionEvent.COMPLETE:
            updated.ended_at = now
            if not updated.summary:
                updated.summary = completion_summary(updated, now, spaces_explored)
        elif event == SessionEvent.PAUSE:
            updated.paused_from = session.state
        elif event in (SessionEvent.RESUME, SessionEvent.RESUME_TO_INTEGRATION):
            updated.paused_from = None
        elif event == SessionEvent.ABANDON:
            updated.ended_at = now

        if new_state != session.state:
            logger.info(f"Session {session.session_id}: {session.state.name} -> {new_state.name}")
        return updated

    def may(self, session: Session, event: SessionEvent, now: datetime, space=None) -> bool:
        """True if apply() would succeed"""
        try:
            next_state(session.state, event, _guards(session, now, space), self.transitions)
        except IllegalTransition:
            return False
        return True


# Singleton instance
state_machine = SessionStateMachine()
