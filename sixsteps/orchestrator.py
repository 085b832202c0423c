"""
CONVERSATION ORCHESTRATOR - Drives one reflection session turn by turn

PER-TURN PIPELINE (first match wins):
0. Completed session -> same completion response again, no side effects
1. Integration -> closing turn stored once, session completed
   (crisis language is still checked first)
2. Risk assessment with the session context snapshot
3. Crisis -> pause + crisis resources, NO turn stored
   (crisis language while paused shows the resources again)
4. Iteration/time limit already reached -> integration
5. Interventions: grounding / pause suggested / early integration
6. No intervention -> store turn, next clean-language question

KEY RULES:
- One session = one writer: every operation runs under the session's lock
- Everything an operation changes goes to the store as ONE TurnCommit
- Failed commits are retried whole, with exponential backoff
- User text is never written to the log
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from .config import Settings, settings as default_settings
from .crisis_resources import crisis_modal_content, grounding_exercise
from .errors import IllegalTransition, StorageFailure
from .models import (
    AbandonedResponse,
    CompletedResponse,
    ContinueResponse,
    CrisisResponse,
    ExportSummary,
    GroundingExercise,
    GroundingResponse,
    IntegrationResponse,
    PausedResponse,
    PauseSuggestedResponse,
    ResponseVariant,
    SessionSummary,
)
from .question_synthesizer import QuestionSynthesizer, question_synthesizer
from .risk_engine import (
    RESOURCE_THRESHOLD,
    AssessmentResult,
    DepthRiskScorer,
    InterventionType,
    ScoringContext,
    risk_scorer,
)
from .session_store import (
    INTEGRATION_ITERATION,
    INTEGRATION_SPACE,
    AuditEvent,
    AuditEventType,
    InMemorySessionStore,
    SessionLockRegistry,
    SessionStore,
    Turn,
    TurnCommit,
)
from .spaces import parse_space
from .state_machine import (
    Session,
    SessionEvent,
    SessionPhase,
    SessionStateMachine,
    at_iteration_limit,
    at_time_limit,
    can_continue,
    elapsed_minutes,
    should_warn_time_limit,
    state_machine,
    utcnow,
)

logger = logging.getLogger(__name__)


def spaces_explored(turns: Iterable[Turn]) -> List[str]:
    """Distinct reflection spaces in first-seen order (the closing turn is not a space)"""
    seen: List[str] = []
    for turn in turns:
        if turn.space_explored and not turn.is_integration and turn.space_explored not in seen:
            seen.append(turn.space_explored)
    return seen


class ConversationOrchestrator:
    def __init__(
        self,
        store: Optional[SessionStore] = None,
        scorer: Optional[DepthRiskScorer] = None,
        synthesizer: Optional[QuestionSynthesizer] = None,
        machine: Optional[SessionStateMachine] = None,
        clock: Optional[Callable[[], datetime]] = None,
        config: Optional[Settings] = None,
    ):
        self.store = store or InMemorySessionStore()
        self.scorer = scorer or risk_scorer
        self.synthesizer = synthesizer or question_synthesizer
        self.machine = machine or state_machine
        self.clock = clock or utcnow
        self.settings = config or default_settings
        self.locks = SessionLockRegistry(self.settings.lock_timeout)

    # ==========================================================================
    # SESSION LIFECYCLE
    # ==========================================================================

    async def start_session(self, owner_id: str, region: Optional[str] = None) -> str:
        region = (region or self.settings.default_region).strip().lower()
        session = Session(
            session_id=str(uuid.uuid4()),
            owner_id=owner_id,
            region=region,
            created_at=self.clock(),
        )
        await self.store.create(session)
        logger.info(f"🆕 Session {session.session_id} started (region={region})")
        return session.session_id

    async def give_consent(self, session_id: str) -> Session:
        async with self.locks.hold(session_id):
            session = await self.store.load(session_id)
            updated = self.machine.apply(session, SessionEvent.GIVE_CONSENT, self.clock())
            return await self._commit(session, updated)

    async def select_space(self, session_id: str, space) -> ContinueResponse:
        """Consents implicitly when still in welcome, then asks the opening question"""
        chosen = parse_space(space)

        async with self.locks.hold(session_id):
            session = await self.store.load(session_id)
            now = self.clock()

            updated = session
            if updated.state == SessionPhase.WELCOME:
                updated = self.machine.apply(updated, SessionEvent.GIVE_CONSENT, now)
            updated = self.machine.apply(updated, SessionEvent.SELECT_SPACE, now, space=chosen)
            updated.pending_question = self.synthesizer.opening_question(chosen)
            updated.reflected_words_cache = None

            stored = await self._commit(session, updated)
            return ContinueResponse(
                origin="first_question",
                question=stored.pending_question,
                state=stored.state.value,
                iteration=stored.iteration_count,
                show_resources=False,
            )

    async def pause(self, session_id: str) -> PausedResponse:
        async with self.locks.hold(session_id):
            session = await self.store.load(session_id)
            now = self.clock()
            paused = self.machine.apply(session, SessionEvent.PAUSE, now)
            event = self._audit(paused, AuditEventType.PAUSE_SUGGESTED, now, response_taken="user_paused")
            stored = await self._commit(session, paused, events=[event])
            return PausedResponse(can_resume=can_continue(stored, now))

    async def resume(self, session_id: str, to_integration: bool = False) -> ResponseVariant:
        async with self.locks.hold(session_id):
            session = await self.store.load(session_id)
            now = self.clock()

            if session.state == SessionPhase.PAUSED and (to_integration or not can_continue(session, now)):
                updated = self.machine.apply(session, SessionEvent.RESUME_TO_INTEGRATION, now)
                return await self._to_integration(session, updated, now)

            updated = self.machine.apply(session, SessionEvent.RESUME, now)
            if session.paused_from == SessionPhase.INTEGRATION or not updated.pending_question:
                # The waiting question was the closing one, ask a reflection again
                question = self._prepare_next_question(updated, await self._last_answer(session_id))
            else:
                question = updated.pending_question
            stored = await self._commit(session, updated)
            return ContinueResponse(
                origin="resumed",
                question=question,
                state=stored.state.value,
                iteration=stored.iteration_count,
                show_resources=stored.depth_score >= RESOURCE_THRESHOLD,
                time_warned=stored.soft_limit_warned,
            )

    async def complete(self, session_id: str) -> CompletedResponse:
        async with self.locks.hold(session_id):
            session = await self.store.load(session_id)
            if session.state == SessionPhase.COMPLETED:
                return await self._completed_response(session)
            stored = await self._complete(session, self.clock())
            return await self._completed_response(stored)

    async def abandon(self, session_id: str) -> AbandonedResponse:
        async with self.locks.hold(session_id):
            session = await self.store.load(session_id)
            abandoned = self.machine.apply(session, SessionEvent.ABANDON, self.clock())
            await self._commit(session, abandoned)
            return AbandonedResponse(session_id=session_id)

    async def expire_if_over_time(self, session_id: str) -> Optional[CompletedResponse]:
        """Completes a session that ran past the hard time limit; None when nothing to do"""
        async with self.locks.hold(session_id):
            session = await self.store.load(session_id)
            now = self.clock()
            if session.is_terminal or not at_time_limit(session, now):
                return None

            logger.info(f"⏰ Session {session_id} passed the hard time limit, completing")
            event = self._audit(session, AuditEventType.SESSION_TIMEOUT, now, response_taken="hard_limit_expired")
            stored = await self._complete(session, now, events=[event])
            return await self._completed_response(stored)

    # ==========================================================================
    # READ MODELS
    # ==========================================================================

    async def get_session(self, session_id: str) -> Session:
        return await self.store.load(session_id)

    async def summary(self, session_id: str) -> SessionSummary:
        session = await self.store.load(session_id)
        return await self._session_summary(session, self.clock())

    async def export_summary(self, session_id: str) -> ExportSummary:
        session = await self.store.load(session_id)
        return await self._export_summary(session)

    # ==========================================================================
    # TURN PROCESSING
    # ==========================================================================

    async def process_turn(self, session_id: str, text: str) -> ResponseVariant:
        async with self.locks.hold(session_id):
            session = await self.store.load(session_id)
            now = self.clock()

            if session.state == SessionPhase.COMPLETED:
                return await self._completed_response(session)
            if session.state == SessionPhase.INTEGRATION:
                return await self._integration_turn(session, text, now)
            if session.state == SessionPhase.PAUSED:
                return await self._paused_turn(session, text, now)
            if session.state != SessionPhase.EMERGENCE_CYCLE:
                raise IllegalTransition("process_turn", session.state.value, "no question is waiting for an answer")

            result = self._assess(session, text, now)

            if result.is_crisis:
                return await self._crisis(session, result, now)

            if not can_continue(session, now):
                return await self._limit_reached(session, text, result, now)

            if result.intervention_type == InterventionType.GROUNDING:
                return await self._grounding(session, result, now)
            if result.intervention_type == InterventionType.PAUSE:
                return await self._suggest_pause(session, text, result, now)
            if result.intervention_type == InterventionType.INTEGRATION:
                return await self._early_integration(session, text, result, now)

            return await self._continue(session, text, result, now)

    def _assess(self, session: Session, text: str, now: datetime) -> AssessmentResult:
        context = ScoringContext.from_session(session, elapsed_minutes(session, now))
        result = self.scorer.assess(text, context)
        logger.info(
            f"Session {session.session_id}: depth={result.depth_score:.2f} "
            f"tier={result.safety_tier.value} triggers={[t.category for t in result.triggers]}"
        )
        return result

    async def _integration_turn(self, session: Session, text: str, now: datetime) -> ResponseVariant:
        result = self._assess(session, text, now)
        if result.is_crisis:
            return await self._crisis(session, result, now)

        existing = await self.store.turns(session.session_id)
        turns = []
        # A resubmitted answer must not create a second closing turn
        if not any(t.is_integration for t in existing):
            turns.append(Turn(
                session_id=session.session_id,
                iteration_number=INTEGRATION_ITERATION,
                question_asked=self.synthesizer.closing_question(),
                user_response=text,
                reflected_words=None,
                space_explored=INTEGRATION_SPACE,
                depth_score_at_end=result.depth_score,
                created_at=now,
            ))

        completed = self.machine.apply(
            session, SessionEvent.COMPLETE, now, spaces_explored=len(spaces_explored(existing))
        )
        completed.pending_question = None
        stored = await self._commit(session, completed, turns=turns)
        return await self._completed_response(stored)

    async def _paused_turn(self, session: Session, text: str, now: datetime) -> CrisisResponse:
        result = self._assess(session, text, now)
        if not result.is_crisis:
            raise IllegalTransition("process_turn", session.state.value, "no question is waiting for an answer")

        # Already paused: show the resources again, state is left alone
        event = self._audit(session, AuditEventType.RESOURCE_DISPLAYED, now, result)
        await self._commit(session, session.copy(), events=[event])
        logger.warning(f"🚨 Crisis language again while session {session.session_id} is paused")
        return CrisisResponse(
            resources=crisis_modal_content(session.region),
            region=session.region,
        )

    async def _crisis(self, session: Session, result: AssessmentResult, now: datetime) -> CrisisResponse:
        paused = self.machine.apply(session, SessionEvent.PAUSE, now)
        events = [
            self._audit(paused, AuditEventType.CRISIS_PROTOCOL_ACTIVATED, now, result),
            self._audit(paused, AuditEventType.RESOURCE_DISPLAYED, now, result),
        ]
        await self._commit(session, paused, events=events)
        logger.warning(f"🚨 Crisis protocol activated for session {session.session_id}")
        return CrisisResponse(
            resources=crisis_modal_content(session.region),
            region=session.region,
        )

    async def _limit_reached(
        self, session: Session, text: str, result: AssessmentResult, now: datetime
    ) -> IntegrationResponse:
        updated, turns = session, []
        if not at_iteration_limit(session):
            updated, turn = self._store_turn(session, text, result, now)
            turns.append(turn)
        return await self._to_integration(session, updated, now, turns=turns)

    async def _grounding(self, session: Session, result: AssessmentResult, now: datetime) -> GroundingResponse:
        updated = session.copy(grounding_count=session.grounding_count + 1)
        event = self._audit(updated, AuditEventType.GROUNDING_INSERTED, now, result)
        await self._commit(session, updated, events=[event])
        return GroundingResponse(
            exercise=GroundingExercise(**grounding_exercise(session.grounding_count)),
            depth_score=result.depth_score,
            safety_tier=result.safety_tier.value,
        )

    async def _suggest_pause(
        self, session: Session, text: str, result: AssessmentResult, now: datetime
    ) -> PauseSuggestedResponse:
        updated, turn = self._store_turn(session, text, result, now)
        events = [
            self._audit(updated, AuditEventType.PAUSE_SUGGESTED, now, result),
            self._audit(updated, AuditEventType.RESOURCE_DISPLAYED, now, result),
        ]
        # Ready for when the user chooses to continue
        next_question = None
        if not at_iteration_limit(updated):
            next_question = self._prepare_next_question(updated, text)

        await self._commit(session, updated, turns=[turn], events=events)
        return PauseSuggestedResponse(depth_score=result.depth_score, next_question=next_question)

    async def _early_integration(
        self, session: Session, text: str, result: AssessmentResult, now: datetime
    ) -> IntegrationResponse:
        updated, turn = self._store_turn(session, text, result, now, label="early_integration")
        event = self._audit(updated, AuditEventType.INTEGRATION_TRIGGERED, now, result)
        return await self._to_integration(session, updated, now, turns=[turn], events=[event])

    async def _continue(
        self, session: Session, text: str, result: AssessmentResult, now: datetime
    ) -> ResponseVariant:
        updated, turn = self._store_turn(session, text, result, now)
        if not can_continue(updated, now):
            return await self._to_integration(session, updated, now, turns=[turn])

        updated = self.machine.apply(updated, SessionEvent.CONTINUE_ITERATION, now)
        events = []
        if should_warn_time_limit(updated, now):
            updated.soft_limit_warned = True
            events.append(self._audit(updated, AuditEventType.SESSION_TIMEOUT, now, result))

        question = self._prepare_next_question(updated, text)
        stored = await self._commit(session, updated, turns=[turn], events=events)
        return ContinueResponse(
            origin="turn",
            question=question,
            state=stored.state.value,
            iteration=stored.iteration_count,
            show_resources=stored.depth_score >= RESOURCE_THRESHOLD,
            safety_tier=result.safety_tier.value,
            time_warned=stored.soft_limit_warned,
        )

    async def _to_integration(
        self,
        before: Session,
        updated: Session,
        now: datetime,
        turns: Optional[List[Turn]] = None,
        events: Optional[List[AuditEvent]] = None,
    ) -> IntegrationResponse:
        events = list(events or [])
        if updated.state != SessionPhase.INTEGRATION:
            updated = self.machine.apply(updated, SessionEvent.BEGIN_INTEGRATION, now)
        if at_iteration_limit(updated):
            events.append(self._audit(updated, AuditEventType.ITERATION_LIMIT_REACHED, now))

        updated.pending_question = self.synthesizer.closing_question()
        stored = await self._commit(before, updated, turns=turns or [], events=events)
        return IntegrationResponse(
            summary=await self._session_summary(stored, now),
            closing_question=stored.pending_question,
            iterations=stored.iteration_count,
        )

    async def _complete(self, session: Session, now: datetime, events: Optional[List[AuditEvent]] = None) -> Session:
        existing = await self.store.turns(session.session_id)
        completed = self.machine.apply(
            session, SessionEvent.COMPLETE, now, spaces_explored=len(spaces_explored(existing))
        )
        completed.pending_question = None
        return await self._commit(session, completed, events=events or [])

    # ==========================================================================
    # HELPERS
    # ==========================================================================

    def _store_turn(
        self,
        session: Session,
        text: str,
        result: AssessmentResult,
        now: datetime,
        label: Optional[str] = None,
    ):
        """The Turn for this answer plus the session advanced past it"""
        turn = Turn(
            session_id=session.session_id,
            iteration_number=session.iteration_count + 1,
            question_asked=session.pending_question,
            user_response=text,
            reflected_words=session.reflected_words_cache,
            space_explored=session.space.value if session.space else None,
            depth_score_at_end=result.depth_score,
            intervention_label=label,
            created_at=now,
        )
        updated = session.copy(
            iteration_count=session.iteration_count + 1,
            depth_score=result.depth_score,
        )
        return updated, turn

    async def _last_answer(self, session_id: str) -> Optional[str]:
        turns = [t for t in await self.store.turns(session_id) if not t.is_integration]
        return turns[-1].user_response if turns else None

    def _prepare_next_question(self, session: Session, prior_text: Optional[str]) -> str:
        """Synthesizes the next question and keeps it on the session (mutates session)"""
        question, reflected = self.synthesizer.next_question_with_phrase(
            session.iteration_count + 1, session.space, prior_text
        )
        session.pending_question = question
        session.reflected_words_cache = reflected
        return question

    def _audit(
        self,
        session: Session,
        event_type: AuditEventType,
        now: datetime,
        result: Optional[AssessmentResult] = None,
        response_taken: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            session_id=session.session_id,
            event_type=event_type,
            trigger_summary=tuple(result.anonymized_triggers()) if result else (),
            depth_score_snapshot=result.depth_score if result else session.depth_score,
            response_taken=response_taken or event_type.value,
            created_at=now,
        )

    async def _commit(
        self,
        before: Session,
        after: Session,
        turns: Iterable[Turn] = (),
        events: Iterable[AuditEvent] = (),
    ) -> Session:
        """
        Hands one TurnCommit to the store, retrying the same commit on
        StorageFailure (2x backoff). The commit id lets the store drop a
        retry of a commit that already landed.
        """
        commit = TurnCommit(
            expected_version=before.version,
            session=after,
            turns=tuple(turns),
            audit_events=tuple(events),
        )
        attempts = max(1, self.settings.commit_retries)

        for attempt in range(1, attempts + 1):
            try:
                stored = await self.store.commit(commit)
                break
            except StorageFailure as e:
                if attempt == attempts:
                    logger.error(f"❌ Commit for session {after.session_id} failed after {attempts} attempts: {e}")
                    raise
                delay = self.settings.commit_retry_base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"⚠️ Commit attempt {attempt} for session {after.session_id} failed, retrying in {delay}s..."
                )
                await asyncio.sleep(delay)

        for event in commit.audit_events:
            logger.info(f"🛡️ Session {after.session_id}: {event.event_type.value}")
        return stored

    async def _session_summary(self, session: Session, now: datetime) -> SessionSummary:
        turns = await self.store.turns(session.session_id)
        events = await self.store.audit_events(session.session_id)
        return SessionSummary(
            started_at=session.started_at,
            duration_minutes=elapsed_minutes(session, now),
            spaces_explored=spaces_explored(turns),
            iterations_completed=session.iteration_count,
            peak_depth_score=max((t.depth_score_at_end for t in turns), default=session.depth_score),
            had_interventions=bool(events),
        )

    async def _export_summary(self, session: Session) -> ExportSummary:
        turns = await self.store.turns(session.session_id)
        events = await self.store.audit_events(session.session_id)
        insights = [t.user_response for t in turns if t.is_integration]
        return ExportSummary(
            date=session.started_at.date().isoformat() if session.started_at else None,
            duration_minutes=elapsed_minutes(session, session.ended_at or self.clock()),
            spaces_explored=spaces_explored(turns),
            iterations_completed=session.iteration_count,
            reflected_words=[t.reflected_words for t in turns if t.reflected_words],
            integration_insight=insights[-1] if insights else None,
            resources_shown=any(e.event_type == AuditEventType.RESOURCE_DISPLAYED for e in events),
            summary_text=session.summary,
        )

    async def _completed_response(self, session: Session) -> CompletedResponse:
        return CompletedResponse(
            session_id=session.session_id,
            summary=await self._export_summary(session),
        )
