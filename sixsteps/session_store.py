"""
SESSION STORE - Storage port, in-memory adapter and per-session locks

KEY RULES:
1. Everything one processed input changes (session row, turns, audit events)
   travels in ONE TurnCommit and lands all-or-nothing
2. Commits are versioned: a commit built from a stale snapshot is rejected
3. Recent commit ids are remembered per session, so re-sending a commit that already landed
   is a no-op (safe retry after a lost acknowledgement)
4. load() hands out copies - callers never hold the stored object
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple

from .errors import SessionBusy, SessionNotFound, StorageFailure
from .state_machine import Session, utcnow

logger = logging.getLogger(__name__)

# Iteration number of the closing turn, orders it after the six reflections
INTEGRATION_ITERATION = 7
INTEGRATION_SPACE = "integration"
# Recent commit ids kept per session; a retry only ever re-sends the latest one
APPLIED_COMMIT_HISTORY = 32


class AuditEventType(str, Enum):
    DEPTH_THRESHOLD_CROSSED = "depth_threshold_crossed"
    CRISIS_PATTERN_DETECTED = "crisis_pattern_detected"
    GROUNDING_INSERTED = "grounding_inserted"
    PAUSE_SUGGESTED = "pause_suggested"
    INTEGRATION_TRIGGERED = "integration_triggered"
    CRISIS_PROTOCOL_ACTIVATED = "crisis_protocol_activated"
    USER_DISMISSED_WARNING = "user_dismissed_warning"
    RESOURCE_DISPLAYED = "resource_displayed"
    RESOURCE_CLICKED = "resource_clicked"
    SESSION_TIMEOUT = "session_timeout"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"
    CONSENT_WITHDRAWN = "consent_withdrawn"


@dataclass(frozen=True)
class Turn:
    session_id: str
    iteration_number: int
    question_asked: Optional[str]
    user_response: str
    reflected_words: Optional[str]
    space_explored: Optional[str]
    depth_score_at_end: float
    intervention_label: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_integration(self) -> bool:
        return self.space_explored == INTEGRATION_SPACE


@dataclass(frozen=True)
class AuditEvent:
    """Safety audit record. trigger_summary holds anonymized trigger dicts only."""
    session_id: str
    event_type: AuditEventType
    trigger_summary: Tuple[Dict[str, str], ...] = ()
    depth_score_snapshot: float = 0.0
    response_taken: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict:
        return {
            "session_id": self.session_id,
            "event_type": self.event_type.value,
            "trigger_summary": [dict(t) for t in self.trigger_summary],
            "depth_score_snapshot": self.depth_score_snapshot,
            "response_taken": self.response_taken,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class TurnCommit:
    expected_version: int
    session: Session
    turns: Tuple[Turn, ...] = ()
    audit_events: Tuple[AuditEvent, ...] = ()
    commit_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class SessionStore(ABC):
    """Async storage port used by the orchestrator"""

    @abstractmethod
    async def create(self, session: Session) -> Session:
        ...

    @abstractmethod
    async def load(self, session_id: str) -> Session:
        """Detached copy of the session; raises SessionNotFound"""

    @abstractmethod
    async def turns(self, session_id: str) -> List[Turn]:
        ...

    @abstractmethod
    async def audit_events(self, session_id: str) -> List[AuditEvent]:
        ...

    @abstractmethod
    async def commit(self, commit: TurnCommit) -> Session:
        """Apply the whole commit or nothing; raises StorageFailure"""


class InMemorySessionStore(SessionStore):
    """
    Process-local store.

    Test hooks:
    - fail_next_commits: the next N commits raise StorageFailure and apply nothing
    - drop_next_acks: the next N commits apply, then raise StorageFailure
      (the caller never hears that they landed)
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._sessions: Dict[str, Session] = {}
        self._turns: Dict[str, List[Turn]] = {}
        self._audit: Dict[str, List[AuditEvent]] = {}
        self._applied: Dict[str, Deque[str]] = {}
        self.fail_next_commits = 0
        self.drop_next_acks = 0

    async def create(self, session: Session) -> Session:
        async with self._lock:
            if session.session_id in self._sessions:
                raise StorageFailure(f"Session already exists: {session.session_id}")
            self._sessions[session.session_id] = session.copy()
            self._turns[session.session_id] = []
            self._audit[session.session_id] = []
            self._applied[session.session_id] = deque(maxlen=APPLIED_COMMIT_HISTORY)
            return session.copy()

    async def load(self, session_id: str) -> Session:
        async with self._lock:
            return self._get(session_id).copy()

    async def turns(self, session_id: str) -> List[Turn]:
        async with self._lock:
            self._get(session_id)
            return list(self._turns[session_id])

    async def audit_events(self, session_id: str) -> List[AuditEvent]:
        async with self._lock:
            self._get(session_id)
            return list(self._audit[session_id])

    async def commit(self, commit: TurnCommit) -> Session:
        session_id = commit.session.session_id
        async with self._lock:
            if commit.commit_id in self._applied.get(session_id, ()):
                logger.info(f"Commit {commit.commit_id[:8]} already applied for session {session_id}")
                return self._get(session_id).copy()

            if self.fail_next_commits > 0:
                self.fail_next_commits -= 1
                raise StorageFailure("Simulated storage failure")

            current = self._get(session_id)
            if current.version != commit.expected_version:
                raise StorageFailure(
                    f"Version conflict for session {session_id}: "
                    f"expected {commit.expected_version}, found {current.version}"
                )

            stored = commit.session.copy(version=current.version + 1)
            self._sessions[session_id] = stored
            self._turns[session_id].extend(commit.turns)
            self._audit[session_id].extend(commit.audit_events)
            self._applied[session_id].append(commit.commit_id)

            if self.drop_next_acks > 0:
                self.drop_next_acks -= 1
                raise StorageFailure("Simulated lost acknowledgement")
            return stored.copy()

    def _get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session


class SessionLockRegistry:
    """
    One asyncio.Lock per session id - a single writer per session.

    Callers queue in arrival order. With a positive timeout, a caller that
    cannot get the lock in time gets SessionBusy instead of waiting forever.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: str):
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._holders[session_id] = self._holders.get(session_id, 0) + 1
        try:
            await self._acquire(session_id, lock)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._holders[session_id] -= 1
            if self._holders[session_id] == 0:
                del self._holders[session_id]
                self._locks.pop(session_id, None)

    async def _acquire(self, session_id: str, lock: asyncio.Lock) -> None:
        if not self.timeout or self.timeout <= 0:
            await lock.acquire()
            return
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Session {session_id} busy, gave up after {self.timeout}s")
            raise SessionBusy(session_id, self.timeout) from None

    def is_locked(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()
