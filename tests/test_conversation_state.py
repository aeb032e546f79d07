import asyncio
import re
from datetime import datetime, timedelta, timezone

import pytest

from app.agent.state import (
    ConversationStateManager,
    generate_session_id,
    get_phase_description,
    is_active_phase,
    is_completed_phase,
    run_periodic_cleanup,
)
from app.schemas.intent import (
    CanvasSection,
    ClarificationQuestion,
    ContextSnapshot,
    ConversationPhase,
    IntentAnalysisResult,
    IntentType,
)


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(clock):
    return ConversationStateManager(
        clock=clock,
        session_timeout=timedelta(minutes=30),
        max_context_history=20,
        max_pending_clarifications=5,
    )


def _question(n):
    return ClarificationQuestion(
        question=f"Question number {n}?",
        target_section=CanvasSection.ACCEPTANCE_CRITERIA,
    )


def _snapshot(clock, n):
    return ContextSnapshot(
        timestamp=clock(),
        user_message=f"message {n}",
        intent=IntentType.PROVIDE_INFORMATION,
        confidence=0.5,
    )


def test_new_session_defaults(manager, clock):
    state = manager.initialize_session("s1")
    assert state.current_phase == ConversationPhase.INITIAL
    assert state.pending_clarifications == []
    assert state.context_history == []
    assert state.awaiting_response is False
    assert state.created_at == state.last_activity == clock()
    assert manager.is_session_active("s1") is True


def test_unknown_session_is_reported_not_raised(manager):
    assert manager.get_state("missing") is None
    assert manager.update_state("missing", awaiting_response=True) is None
    assert manager.add_pending_clarifications("missing", [_question(1)]) is None
    assert manager.transition_phase("missing", ConversationPhase.COMPLETED) is None
    assert manager.end_session("missing") is False
    assert manager.get_pending_clarifications("missing") == []
    assert manager.get_conversation_history("missing") == []
    assert manager.is_awaiting_response("missing") is False


def test_update_refreshes_last_activity(manager, clock):
    manager.initialize_session("s1")
    clock.advance(minutes=5)
    state = manager.update_state("s1", awaiting_response=True)
    assert state.last_activity == clock()
    assert state.created_at == clock() - timedelta(minutes=5)


def test_pending_clarifications_keep_the_newest_five(manager):
    manager.initialize_session("s1")
    manager.add_pending_clarifications("s1", [_question(i) for i in range(4)])
    state = manager.add_pending_clarifications("s1", [_question(i) for i in range(4, 7)])

    assert [q.question for q in state.pending_clarifications] == [
        f"Question number {i}?" for i in range(2, 7)
    ]
    assert state.current_phase == ConversationPhase.AWAITING_CLARIFICATION
    assert manager.is_awaiting_response("s1") is True

    cleared = manager.clear_pending_clarifications("s1")
    assert cleared.pending_clarifications == []
    assert cleared.awaiting_response is False


def test_context_history_is_bounded(manager, clock):
    manager.initialize_session("s1")
    for n in range(25):
        manager.add_context_snapshot("s1", _snapshot(clock, n))

    history = manager.get_conversation_history("s1")
    assert len(history) == 20
    assert history[0].user_message == "message 5"
    assert history[-1].user_message == "message 24"


def test_transition_sets_awaiting_flag(manager):
    manager.initialize_session("s1")
    assert manager.transition_phase("s1", ConversationPhase.AWAITING_CLARIFICATION).awaiting_response is True
    state = manager.transition_phase("s1", ConversationPhase.PROVIDING_INFORMATION)
    assert state.awaiting_response is False
    assert state.current_phase == ConversationPhase.PROVIDING_INFORMATION


def test_update_last_intent(manager):
    manager.initialize_session("s1")
    intent = IntentAnalysisResult(intent=IntentType.MODIFY_CANVAS, confidence=0.9, reasoning="clear request")
    assert manager.update_last_intent("s1", intent).last_intent.intent == IntentType.MODIFY_CANVAS


def test_idle_session_expires(manager, clock):
    manager.initialize_session("s1")
    manager.initialize_session("s2")
    clock.advance(minutes=20)
    manager.update_state("s2", awaiting_response=True)
    clock.advance(minutes=11)

    assert manager.cleanup_expired_sessions() == 1
    assert manager.get_state("s1") is None
    assert manager.get_state("s2") is not None


def test_expired_session_is_invisible_before_cleanup(manager, clock):
    manager.initialize_session("s1")
    clock.advance(minutes=31)
    assert manager.get_state("s1") is None
    assert manager.is_session_active("s1") is False


def test_end_session_marks_completed(manager):
    manager.initialize_session("s1")
    manager.transition_phase("s1", ConversationPhase.AWAITING_CLARIFICATION)
    assert manager.end_session("s1") is True
    state = manager.get_state("s1")
    assert state.current_phase == ConversationPhase.COMPLETED
    assert state.awaiting_response is False


def test_session_stats(manager, clock):
    manager.initialize_session("s1")
    manager.initialize_session("s2")
    manager.add_pending_clarifications("s1", [_question(1)])
    for n in range(4):
        manager.add_context_snapshot("s2", _snapshot(clock, n))

    stats = manager.get_session_stats()
    assert stats.total_sessions == 2
    assert stats.active_sessions == 2
    assert stats.awaiting_response_sessions == 1
    assert stats.average_conversation_length == pytest.approx(2.0)

    manager.clear()
    assert manager.get_session_stats().total_sessions == 0


def test_session_ids_are_unique_and_well_formed():
    ids = {generate_session_id() for _ in range(200)}
    assert len(ids) == 200
    assert all(re.fullmatch(r"session_\d+_[a-z0-9]{9}", sid) for sid in ids)


def test_phase_helpers():
    assert is_active_phase(ConversationPhase.AWAITING_CLARIFICATION) is True
    assert is_active_phase(ConversationPhase.INITIAL) is False
    assert is_completed_phase(ConversationPhase.COMPLETED) is True
    assert get_phase_description(ConversationPhase.PROVIDING_INFORMATION) == "Providing information to user"
    assert get_phase_description("sleeping") == "Unknown phase"


@pytest.mark.asyncio
async def test_periodic_cleanup_sweeps_expired_sessions(manager, clock):
    manager.initialize_session("s1")
    clock.advance(minutes=45)

    task = asyncio.create_task(run_periodic_cleanup(manager, 0.01))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(manager.store) == 0
