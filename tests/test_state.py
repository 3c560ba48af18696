"""Tests for src/state.py."""

from src.models import DiscussionMessage, IterationResult
from src.state import RunEvent, RunPhase, RunState


def test_listener_receives_events_and_state():
    state = RunState()
    received = []
    state.subscribe(lambda event, s: received.append((event, s.phase)))

    state.set_phase(RunPhase.ANALYSIS)

    assert received == [(RunEvent.PHASE_CHANGED, RunPhase.ANALYSIS)]


def test_unsubscribe_stops_notifications():
    state = RunState()
    received = []
    unsubscribe = state.subscribe(lambda event, s: received.append(event))
    unsubscribe()
    state.set_phase(RunPhase.DONE)
    assert received == []


def test_begin_iteration_resets_live_transcript():
    state = RunState()
    state.begin_iteration(1, 3)
    state.add_message(DiscussionMessage("expert_1", "Treasury Analyst", "hi"))
    assert len(state.live_transcript) == 1

    state.begin_iteration(2, 3)

    assert state.live_transcript == []
    assert (state.current_iteration, state.total_iterations) == (2, 3)


def test_complete_iteration_appends_result():
    state = RunState()
    state.complete_iteration(IterationResult(1, 60.0, "ok"))
    assert [r.feasibility_score for r in state.iterations] == [60.0]


def test_request_cancel_sets_flag():
    state = RunState()
    assert state.cancel_requested is False
    state.request_cancel()
    assert state.cancel_requested is True


def test_listeners_not_in_repr_or_init():
    state = RunState(phase=RunPhase.DISCUSSION)
    state.subscribe(lambda event, s: None)
    assert "_listeners" not in repr(state)
