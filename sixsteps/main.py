"""
MAIN API - FastAPI adapter around the ConversationOrchestrator

The adapter only translates: JSON in -> orchestrator call -> response
variant out, and domain errors -> HTTP status codes.

ERROR MAPPING:
- SessionNotFound   -> 404
- IllegalTransition -> 409
- InvalidSpace      -> 422
- SessionBusy       -> 429
- StorageFailure    -> 503
- blank turn text   -> 400
"""

import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .auth import get_api_key
from .config import settings
from .crisis_resources import crisis_modal_content
from .errors import IllegalTransition, InvalidSpace, SessionBusy, SessionNotFound, SixStepsError, StorageFailure
from .models import (
    AbandonedResponse,
    CompletedResponse,
    ContinueResponse,
    ExportSummary,
    PausedResponse,
    ResumeRequest,
    SelectSpaceRequest,
    StartSessionRequest,
    StartSessionResponse,
    TurnRequest,
)
from .orchestrator import ConversationOrchestrator
from .spaces import space_options

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="Six Steps Reflection API", version="1.0.0")

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize components
orchestrator = ConversationOrchestrator()

ERROR_STATUS = {
    SessionNotFound: 404,
    IllegalTransition: 409,
    InvalidSpace: 422,
    SessionBusy: 429,
    StorageFailure: 503,
}


def to_http_error(error: SixStepsError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            break
    else:
        status_code = 500

    if status_code >= 500:
        logger.error(f"❌ {type(error).__name__}: {error}")
    else:
        logger.warning(f"⚠️ {type(error).__name__}: {error}")
    return HTTPException(status_code=status_code, detail=str(error))


@app.post("/sessions", response_model=StartSessionResponse)
async def start_session(request: StartSessionRequest, api_key: str = Depends(get_api_key)):
    if not request.ownerId.strip():
        raise HTTPException(status_code=400, detail="Invalid request: 'ownerId' is required")
    session_id = await orchestrator.start_session(request.ownerId, request.region)
    session = await orchestrator.get_session(session_id)
    return StartSessionResponse(sessionId=session_id, state=session.state.value)


@app.post("/sessions/{session_id}/space", response_model=ContinueResponse)
async def select_space(session_id: str, request: SelectSpaceRequest, api_key: str = Depends(get_api_key)):
    try:
        return await orchestrator.select_space(session_id, request.space)
    except SixStepsError as e:
        raise to_http_error(e)


@app.post("/sessions/{session_id}/turns")
async def process_turn(session_id: str, request: TurnRequest, api_key: str = Depends(get_api_key)):
    """Answer the pending question; returns one response variant, tagged by `type`"""
    if not request.text or not request.text.strip():
        raise HTTPException(status_code=400, detail="Invalid request: 'text' must not be blank")
    try:
        return await orchestrator.process_turn(session_id, request.text)
    except SixStepsError as e:
        raise to_http_error(e)


@app.post("/sessions/{session_id}/pause", response_model=PausedResponse)
async def pause_session(session_id: str, api_key: str = Depends(get_api_key)):
    try:
        return await orchestrator.pause(session_id)
    except SixStepsError as e:
        raise to_http_error(e)


@app.post("/sessions/{session_id}/resume")
async def resume_session(
    session_id: str,
    request: Optional[ResumeRequest] = None,
    api_key: str = Depends(get_api_key),
):
    to_integration = request.toIntegration if request else False
    try:
        return await orchestrator.resume(session_id, to_integration=to_integration)
    except SixStepsError as e:
        raise to_http_error(e)


@app.post("/sessions/{session_id}/complete", response_model=CompletedResponse)
async def complete_session(session_id: str, api_key: str = Depends(get_api_key)):
    try:
        return await orchestrator.complete(session_id)
    except SixStepsError as e:
        raise to_http_error(e)


@app.post("/sessions/{session_id}/abandon", response_model=AbandonedResponse)
async def abandon_session(session_id: str, api_key: str = Depends(get_api_key)):
    try:
        return await orchestrator.abandon(session_id)
    except SixStepsError as e:
        raise to_http_error(e)


@app.get("/sessions/{session_id}")
async def get_session_info(session_id: str, api_key: str = Depends(get_api_key)):
    """Session state snapshot (no user text)"""
    try:
        session = await orchestrator.get_session(session_id)
    except SixStepsError as e:
        raise to_http_error(e)
    return session.to_dict()


@app.get("/sessions/{session_id}/summary", response_model=ExportSummary)
async def get_session_summary(session_id: str, api_key: str = Depends(get_api_key)):
    try:
        return await orchestrator.export_summary(session_id)
    except SixStepsError as e:
        raise to_http_error(e)


@app.get("/spaces")
async def list_spaces(api_key: str = Depends(get_api_key)):
    return space_options()


@app.get("/resources/{region}")
async def get_resources(region: str, api_key: str = Depends(get_api_key)):
    return crisis_modal_content(region)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "version": "1.0.0"}
