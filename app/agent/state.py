from __future__ import annotations

import asyncio
import logging
import secrets
import string
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from app.core.config import settings
from app.schemas.intent import (
    AnalysisContext,
    ClarificationQuestion,
    ContextSnapshot,
    ConversationPhase,
    ConversationState,
    IntentAnalysisResult,
    IntentType,
    SessionStats,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

ACTIVE_PHASES = {
    ConversationPhase.AWAITING_CLARIFICATION,
    ConversationPhase.PROCESSING_MODIFICATION,
    ConversationPhase.PROVIDING_INFORMATION,
}

PHASE_DESCRIPTIONS = {
    ConversationPhase.INITIAL: "Conversation started",
    ConversationPhase.AWAITING_CLARIFICATION: "Waiting for user clarification",
    ConversationPhase.PROCESSING_MODIFICATION: "Processing canvas modifications",
    ConversationPhase.PROVIDING_INFORMATION: "Providing information to user",
    ConversationPhase.COMPLETED: "Conversation completed",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_session_id() -> str:
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


def is_active_phase(phase: ConversationPhase) -> bool:
    return ConversationPhase(phase) in ACTIVE_PHASES


def is_completed_phase(phase: ConversationPhase) -> bool:
    return ConversationPhase(phase) == ConversationPhase.COMPLETED


def get_phase_description(phase: ConversationPhase) -> str:
    try:
        return PHASE_DESCRIPTIONS[ConversationPhase(phase)]
    except ValueError:
        return "Unknown phase"


class ConversationStore:
    """In-memory session map. One instance per process, owned by the state manager."""

    def __init__(self):
        self._states: Dict[str, ConversationState] = {}

    def get(self, session_id: str) -> Optional[ConversationState]:
        return self._states.get(session_id)

    def set(self, session_id: str, state: ConversationState) -> None:
        self._states[session_id] = state

    def delete(self, session_id: str) -> bool:
        return self._states.pop(session_id, None) is not None

    def session_ids(self) -> List[str]:
        return list(self._states.keys())

    def clear(self) -> None:
        self._states.clear()

    def __len__(self) -> int:
        return len(self._states)


class ConversationStateManager:
    """Tracks per-session conversation phase, pending questions and turn history.

    Sessions idle for longer than the timeout are invisible to readers and removed by
    cleanup_expired_sessions, which the application runs on a timer.
    """

    def __init__(
        self,
        store: Optional[ConversationStore] = None,
        clock: Optional[Clock] = None,
        session_timeout: Optional[timedelta] = None,
        max_context_history: Optional[int] = None,
        max_pending_clarifications: Optional[int] = None,
    ):
        self.store = store or ConversationStore()
        self.clock = clock or utcnow
        self.session_timeout = session_timeout or timedelta(minutes=settings.SESSION_TIMEOUT_MINUTES)
        self.max_context_history = max_context_history or settings.MAX_CONTEXT_HISTORY
        self.max_pending_clarifications = max_pending_clarifications or settings.MAX_PENDING_CLARIFICATIONS

    def _expired(self, state: ConversationState, now: datetime) -> bool:
        return now - state.last_activity > self.session_timeout

    def initialize_session(self, session_id: str) -> ConversationState:
        now = self.clock()
        state = ConversationState(
            session_id=session_id,
            current_phase=ConversationPhase.INITIAL,
            pending_clarifications=[],
            last_intent=IntentAnalysisResult(
                intent=IntentType.PROVIDE_INFORMATION,
                confidence=0.0,
                target_sections=[],
                context=AnalysisContext(),
                reasoning="Initial session state",
            ),
            context_history=[],
            awaiting_response=False,
            created_at=now,
            last_activity=now,
        )
        self.store.set(session_id, state)
        return state

    def get_state(self, session_id: str) -> Optional[ConversationState]:
        state = self.store.get(session_id)
        if state is None:
            return None
        if self._expired(state, self.clock()):
            self.store.delete(session_id)
            return None
        return state

    def update_state(self, session_id: str, **updates: Any) -> Optional[ConversationState]:
        current = self.get_state(session_id)
        if current is None:
            return None
        updates["last_activity"] = self.clock()
        updated = current.model_copy(update=updates)
        self.store.set(session_id, updated)
        return updated

    def transition_phase(self, session_id: str, phase: ConversationPhase) -> Optional[ConversationState]:
        # Any phase may follow any other; only the session's existence is checked.
        phase = ConversationPhase(phase)
        return self.update_state(
            session_id,
            current_phase=phase,
            awaiting_response=phase == ConversationPhase.AWAITING_CLARIFICATION,
        )

    def add_pending_clarifications(
        self,
        session_id: str,
        questions: List[ClarificationQuestion],
    ) -> Optional[ConversationState]:
        current = self.get_state(session_id)
        if current is None:
            return None
        pending = (list(current.pending_clarifications) + list(questions))[-self.max_pending_clarifications:]
        return self.update_state(
            session_id,
            pending_clarifications=pending,
            current_phase=ConversationPhase.AWAITING_CLARIFICATION,
            awaiting_response=True,
        )

    def clear_pending_clarifications(self, session_id: str) -> Optional[ConversationState]:
        return self.update_state(session_id, pending_clarifications=[], awaiting_response=False)

    def update_last_intent(self, session_id: str, intent: IntentAnalysisResult) -> Optional[ConversationState]:
        return self.update_state(session_id, last_intent=intent)

    def add_context_snapshot(self, session_id: str, snapshot: ContextSnapshot) -> Optional[ConversationState]:
        current = self.get_state(session_id)
        if current is None:
            return None
        history = (list(current.context_history) + [snapshot])[-self.max_context_history:]
        return self.update_state(session_id, context_history=history)

    def is_session_active(self, session_id: str) -> bool:
        return self.get_state(session_id) is not None

    def is_awaiting_response(self, session_id: str) -> bool:
        state = self.get_state(session_id)
        return bool(state and state.awaiting_response)

    def get_pending_clarifications(self, session_id: str) -> List[ClarificationQuestion]:
        state = self.get_state(session_id)
        return list(state.pending_clarifications) if state else []

    def get_conversation_history(self, session_id: str) -> List[ContextSnapshot]:
        state = self.get_state(session_id)
        return list(state.context_history) if state else []

    def end_session(self, session_id: str) -> bool:
        if self.get_state(session_id) is None:
            return False
        self.update_state(session_id, current_phase=ConversationPhase.COMPLETED, awaiting_response=False)
        return True

    def cleanup_expired_sessions(self) -> int:
        now = self.clock()
        expired = [
            sid for sid in self.store.session_ids()
            if (state := self.store.get(sid)) is not None and self._expired(state, now)
        ]
        for sid in expired:
            self.store.delete(sid)
        if expired:
            logger.info(f"Cleaned up {len(expired)} expired conversation sessions")
        return len(expired)

    def get_session_stats(self) -> SessionStats:
        states = [s for s in (self.store.get(sid) for sid in self.store.session_ids()) if s is not None]
        total = len(states)
        now = self.clock()
        return SessionStats(
            total_sessions=total,
            active_sessions=sum(1 for s in states if not self._expired(s, now)),
            awaiting_response_sessions=sum(1 for s in states if s.awaiting_response),
            average_conversation_length=(sum(len(s.context_history) for s in states) / total) if total else 0.0,
        )

    def clear(self) -> None:
        self.store.clear()


async def run_periodic_cleanup(manager: ConversationStateManager, interval_seconds: float) -> None:
    """Sweep expired sessions forever; cancel the task to stop it."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            manager.cleanup_expired_sessions()
        except Exception as e:
            logger.error(f"Session cleanup failed: {e}", exc_info=True)
