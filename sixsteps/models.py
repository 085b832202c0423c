from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


# ==============================================================================
# API REQUESTS
# ==============================================================================

class StartSessionRequest(BaseModel):
    ownerId: str  # Reference to the user who owns the session
    region: Optional[str] = None  # uk / us / eu / au (anything else -> international resources)


class StartSessionResponse(BaseModel):
    sessionId: str
    state: str


class SelectSpaceRequest(BaseModel):
    space: str  # here / there / before / after / inside / outside


class TurnRequest(BaseModel):
    text: str  # The user's free-text response to the pending question


class ResumeRequest(BaseModel):
    toIntegration: bool = False


# ==============================================================================
# SUMMARIES
# ==============================================================================

class SessionSummary(BaseModel):
    """Shown when the session moves into integration"""
    started_at: Optional[datetime] = None
    duration_minutes: int = 0
    spaces_explored: List[str] = Field(default_factory=list)
    iterations_completed: int = 0
    peak_depth_score: float = 0.0
    had_interventions: bool = False


class ExportSummary(BaseModel):
    """Stable summary of a finished session (same data on every read)"""
    date: Optional[str] = None  # ISO date the session started
    duration_minutes: int = 0
    spaces_explored: List[str] = Field(default_factory=list)
    iterations_completed: int = 0
    reflected_words: List[str] = Field(default_factory=list)
    integration_insight: Optional[str] = None
    resources_shown: bool = False
    summary_text: Optional[str] = None


class GroundingExercise(BaseModel):
    name: str
    instructions: List[str]


# ==============================================================================
# RESPONSE VARIANTS - closed set, discriminated by `type`
# ==============================================================================

class ContinueResponse(BaseModel):
    type: Literal["continue"] = "continue"
    origin: Literal["first_question", "turn", "resumed"] = "turn"
    question: Optional[str]
    state: str
    iteration: int
    show_resources: bool = False
    safety_tier: Optional[str] = None
    time_warned: bool = False


class GroundingResponse(BaseModel):
    type: Literal["grounding"] = "grounding"
    exercise: GroundingExercise
    continue_option: bool = True
    depth_score: float
    safety_tier: str


class PauseSuggestedResponse(BaseModel):
    type: Literal["pause_suggested"] = "pause_suggested"
    message: str = "Would you like to take a moment before continuing?"
    options: List[str] = Field(default_factory=lambda: ["continue_gently", "pause", "show_resources"])
    depth_score: float
    resources_available: bool = True
    next_question: Optional[str] = None


class PausedResponse(BaseModel):
    type: Literal["paused"] = "paused"
    message: str = "Session paused. Take all the time you need."
    options: List[str] = Field(default_factory=lambda: ["resume", "end_session", "show_resources"])
    can_resume: bool


class CrisisResponse(BaseModel):
    type: Literal["crisis"] = "crisis"
    resources: Dict[str, Any]
    message: str = "Here are some resources you might find useful."
    region: str
    session_paused: bool = True


class IntegrationResponse(BaseModel):
    type: Literal["integration"] = "integration"
    summary: SessionSummary
    closing_question: str
    iterations: int


class CompletedResponse(BaseModel):
    type: Literal["completed"] = "completed"
    session_id: str
    summary: ExportSummary


class AbandonedResponse(BaseModel):
    type: Literal["abandoned"] = "abandoned"
    session_id: str


ResponseVariant = Union[
    ContinueResponse,
    GroundingResponse,
    PauseSuggestedResponse,
    PausedResponse,
    CrisisResponse,
    IntegrationResponse,
    CompletedResponse,
    AbandonedResponse,
]
