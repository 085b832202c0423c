"""
STATE MACHINE TESTS
Transition table, guards, terminal states, limits and side effects.
"""

from datetime import datetime, timedelta, timezone

import pytest

from sixsteps.errors import IllegalTransition, InvalidSpace
from sixsteps.spaces import Space
from sixsteps.state_machine import (
    Session,
    SessionEvent,
    SessionPhase,
    at_time_limit,
    can_continue,
    elapsed_minutes,
    next_state,
    should_warn_time_limit,
    state_machine,
)

BASE_TIME = datetime(2026, 2, 3, 10, 0, 0, tzinfo=timezone.utc)


def _session(**fields) -> Session:
    defaults = dict(session_id="s-1", owner_id="owner-1", created_at=BASE_TIME)
    defaults.update(fields)
    return Session(**defaults)


def _active(**fields) -> Session:
    defaults = dict(state=SessionPhase.EMERGENCE_CYCLE, space=Space.HERE, started_at=BASE_TIME)
    defaults.update(fields)
    return _session(**defaults)


class TestTransitionTable:

    @pytest.mark.parametrize("current,event,guards,expected", [
        (SessionPhase.WELCOME, SessionEvent.GIVE_CONSENT, {}, SessionPhase.SPACE_SELECTION),
        (SessionPhase.SPACE_SELECTION, SessionEvent.SELECT_SPACE, {"valid_space": True}, SessionPhase.EMERGENCE_CYCLE),
        (SessionPhase.EMERGENCE_CYCLE, SessionEvent.CONTINUE_ITERATION, {"can_continue": True}, SessionPhase.EMERGENCE_CYCLE),
        (SessionPhase.EMERGENCE_CYCLE, SessionEvent.BEGIN_INTEGRATION, {}, SessionPhase.INTEGRATION),
        (SessionPhase.EMERGENCE_CYCLE, SessionEvent.PAUSE, {}, SessionPhase.PAUSED),
        (SessionPhase.INTEGRATION, SessionEvent.PAUSE, {}, SessionPhase.PAUSED),
        (SessionPhase.PAUSED, SessionEvent.RESUME, {"can_continue": True}, SessionPhase.EMERGENCE_CYCLE),
        (SessionPhase.PAUSED, SessionEvent.RESUME, {"can_continue": False}, SessionPhase.INTEGRATION),
        (SessionPhase.PAUSED, SessionEvent.RESUME_TO_INTEGRATION, {}, SessionPhase.INTEGRATION),
        (SessionPhase.EMERGENCE_CYCLE, SessionEvent.COMPLETE, {}, SessionPhase.COMPLETED),
        (SessionPhase.INTEGRATION, SessionEvent.COMPLETE, {}, SessionPhase.COMPLETED),
        (SessionPhase.PAUSED, SessionEvent.COMPLETE, {}, SessionPhase.COMPLETED),
        (SessionPhase.WELCOME, SessionEvent.ABANDON, {}, SessionPhase.ABANDONED),
        (SessionPhase.PAUSED, SessionEvent.ABANDON, {}, SessionPhase.ABANDONED),
    ])
    def test_legal_transitions(self, current, event, guards, expected):
        assert next_state(current, event, guards) == expected

    def test_failed_guard_raises(self):
        with pytest.raises(IllegalTransition) as exc:
            next_state(SessionPhase.EMERGENCE_CYCLE, SessionEvent.CONTINUE_ITERATION, {"can_continue": False})
        assert exc.value.reason == "guard 'can_continue' failed"

    @pytest.mark.parametrize("current,event", [
        (SessionPhase.WELCOME, SessionEvent.SELECT_SPACE),
        (SessionPhase.WELCOME, SessionEvent.COMPLETE),
        (SessionPhase.SPACE_SELECTION, SessionEvent.PAUSE),
        (SessionPhase.EMERGENCE_CYCLE, SessionEvent.RESUME),
        (SessionPhase.INTEGRATION, SessionEvent.CONTINUE_ITERATION),
    ])
    def test_wrong_source_state_raises(self, current, event):
        with pytest.raises(IllegalTransition) as exc:
            next_state(current, event, {"can_continue": True, "valid_space": True})
        assert exc.value.state == current.value
        assert exc.value.event == event.value

    @pytest.mark.parametrize("terminal", [SessionPhase.COMPLETED, SessionPhase.ABANDONED])
    @pytest.mark.parametrize("event", list(SessionEvent))
    def test_nothing_leaves_a_terminal_state(self, terminal, event):
        with pytest.raises(IllegalTransition):
            next_state(terminal, event, {"can_continue": True, "valid_space": True})


class TestApply:

    def test_select_space_sets_start(self):
        session = _session(state=SessionPhase.SPACE_SELECTION)
        updated = state_machine.apply(session, SessionEvent.SELECT_SPACE, BASE_TIME, space="Inside")
        assert updated.state == SessionPhase.EMERGENCE_CYCLE
        assert updated.space == Space.INSIDE
        assert updated.started_at == BASE_TIME

    def test_invalid_space_raises_before_anything_changes(self):
        session = _session(state=SessionPhase.SPACE_SELECTION)
        with pytest.raises(InvalidSpace):
            state_machine.apply(session, SessionEvent.SELECT_SPACE, BASE_TIME, space="sideways")
        assert session.state == SessionPhase.SPACE_SELECTION
        assert session.space is None

    def test_apply_never_mutates_input(self):
        session = _active()
        updated = state_machine.apply(session, SessionEvent.PAUSE, BASE_TIME)
        assert session.state == SessionPhase.EMERGENCE_CYCLE
        assert updated.state == SessionPhase.PAUSED
        assert updated is not session

    def test_continue_blocked_at_iteration_limit(self):
        session = _active(iteration_count=6)
        assert not state_machine.may(session, SessionEvent.CONTINUE_ITERATION, BASE_TIME)
        with pytest.raises(IllegalTransition):
            state_machine.apply(session, SessionEvent.CONTINUE_ITERATION, BASE_TIME)

    def test_resume_falls_back_to_integration_past_time_limit(self):
        session = _active(state=SessionPhase.PAUSED)
        later = BASE_TIME + timedelta(minutes=30)
        assert state_machine.apply(session, SessionEvent.RESUME, later).state == SessionPhase.INTEGRATION

    @pytest.mark.parametrize("origin", [SessionPhase.EMERGENCE_CYCLE, SessionPhase.INTEGRATION])
    def test_pause_remembers_origin_until_resume(self, origin):
        paused = state_machine.apply(_active(state=origin), SessionEvent.PAUSE, BASE_TIME)
        assert paused.paused_from == origin
        assert paused.to_dict()["paused_from"] == origin.value

        resumed = state_machine.apply(paused, SessionEvent.RESUME, BASE_TIME)
        assert resumed.paused_from is None
        to_integration = state_machine.apply(paused, SessionEvent.RESUME_TO_INTEGRATION, BASE_TIME)
        assert to_integration.paused_from is None

    def test_complete_writes_summary_and_end_time(self):
        session = _active(state=SessionPhase.INTEGRATION, iteration_count=3)
        done = state_machine.apply(session, SessionEvent.COMPLETE, BASE_TIME + timedelta(minutes=12))
        assert done.summary == "Session completed on February 03, 2026. Explored 1 space(s). Completed 3 reflection(s)."
        assert done.ended_at == BASE_TIME + timedelta(minutes=12)
        assert done.is_terminal

    def test_complete_keeps_existing_summary(self):
        session = _active(summary="Kept")
        assert state_machine.apply(session, SessionEvent.COMPLETE, BASE_TIME).summary == "Kept"


class TestLimits:

    def test_elapsed_minutes_round_half_up(self):
        session = _active()
        assert elapsed_minutes(session, BASE_TIME + timedelta(minutes=14, seconds=29)) == 14
        assert elapsed_minutes(session, BASE_TIME + timedelta(minutes=14, seconds=30)) == 15
        assert elapsed_minutes(session, BASE_TIME + timedelta(minutes=14, seconds=59)) == 15
        assert elapsed_minutes(session, BASE_TIME + timedelta(seconds=29)) == 0
        assert elapsed_minutes(_session(), BASE_TIME + timedelta(hours=2)) == 0

    def test_elapsed_stops_at_end(self):
        session = _active(ended_at=BASE_TIME + timedelta(minutes=20))
        assert elapsed_minutes(session, BASE_TIME + timedelta(hours=5)) == 20

    def test_soft_warning_latch(self):
        now = BASE_TIME + timedelta(minutes=15)
        assert should_warn_time_limit(_active(), now)
        assert not should_warn_time_limit(_active(soft_limit_warned=True), now)
        assert not should_warn_time_limit(_active(), now - timedelta(seconds=31))
        assert should_warn_time_limit(_active(), now - timedelta(seconds=30))

    def test_hard_limit(self):
        assert not at_time_limit(_active(), BASE_TIME + timedelta(minutes=29, seconds=29))
        assert at_time_limit(_active(), BASE_TIME + timedelta(minutes=29, seconds=30))
        assert at_time_limit(_active(), BASE_TIME + timedelta(minutes=30))
        assert not can_continue(_active(), BASE_TIME + timedelta(minutes=30))

    def test_iteration_limit(self):
        assert can_continue(_active(iteration_count=5), BASE_TIME)
        assert not can_continue(_active(iteration_count=6), BASE_TIME)

    def test_active_phases(self):
        assert _session().is_active
        assert _active().is_active
        assert not _active(state=SessionPhase.PAUSED).is_active
