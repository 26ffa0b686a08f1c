"""Unit tests for the pure review-queue state machine.

WHY: transition() holds every queue rule: when processing starts, when
the cursor moves, when "complete" is announced. Testing it without the
async runtime makes each rule visible on its own.

HOW: Tests build a QueueState, apply events with transition(), and check
the returned state and effects.

RULES:
- No asyncio, no I/O; transition() is pure
- Tests are organized by event type
"""

from __future__ import annotations

from typing import List

import pytest

from caption_review.core.models import CaptionResult
from caption_review.review.state import (
    GenerationFailed,
    GenerationSucceeded,
    Publish,
    QueuePhase,
    QueueState,
    Start,
    StartProcessing,
    ViewerConnected,
    ViewerDecision,
    transition,
)
from caption_review.server.models import CaptionMessage, CompleteMessage, ErrorMessage

ITEMS = ["a.png", "b.jpg", "c.webp"]
RESULT = CaptionResult("a cat", ["cat"])


def _idle(cursor: int = 0, items: List[str] = ITEMS) -> QueueState:
    return QueueState(items=tuple(items), cursor=cursor, in_flight=False, started=True)


def _processing(cursor: int = 0, items: List[str] = ITEMS) -> QueueState:
    return QueueState(items=tuple(items), cursor=cursor, in_flight=True, started=True)


# ---------------------------------------------------------------------------
# QueueState
# ---------------------------------------------------------------------------


class TestQueueState:
    """QueueState construction and derived properties."""

    def test_initial_state(self):
        state = QueueState.initial(ITEMS)
        assert state.cursor == 0
        assert state.total == 3
        assert state.in_flight is False
        assert state.started is False
        assert state.phase == QueuePhase.IDLE
        assert state.current_path == "a.png"

    def test_empty_items_rejected(self):
        with pytest.raises(ValueError):
            QueueState.initial([])

    def test_items_are_immutable_copy(self):
        items = ["a.png"]
        state = QueueState.initial(items)
        items.append("b.png")
        assert state.items == ("a.png",)

    def test_phases(self):
        assert _idle().phase == QueuePhase.IDLE
        assert _processing().phase == QueuePhase.PROCESSING
        done = QueueState(items=tuple(ITEMS), cursor=3, started=True)
        assert done.phase == QueuePhase.COMPLETE
        assert done.complete is True
        assert done.current_path is None


# ---------------------------------------------------------------------------
# Start / ViewerConnected
# ---------------------------------------------------------------------------


class TestStart:
    """The first connect (or an explicit Start) begins processing item 0."""

    @pytest.mark.parametrize("event", [Start(), ViewerConnected()])
    def test_first_trigger_starts_item_zero(self, event):
        state, effects = transition(QueueState.initial(ITEMS), event)
        assert state.in_flight is True
        assert state.started is True
        assert state.cursor == 0
        assert effects == [StartProcessing(index=0, path="a.png")]

    def test_connect_while_processing_is_noop(self):
        state = _processing()
        assert transition(state, ViewerConnected()) == (state, [])

    def test_connect_after_start_is_noop(self):
        state = _idle(cursor=0)
        assert transition(state, ViewerConnected()) == (state, [])

    def test_connect_mid_queue_is_noop(self):
        state = _idle(cursor=1)
        assert transition(state, ViewerConnected()) == (state, [])


# ---------------------------------------------------------------------------
# Generation results
# ---------------------------------------------------------------------------


class TestGenerationResults:
    """Completions settle the in-flight item and publish the outcome."""

    def test_success_publishes_caption(self):
        state, effects = transition(_processing(1), GenerationSucceeded(index=1, result=RESULT))
        assert state == _idle(1)
        assert effects == [Publish(CaptionMessage(description="a cat", tags=["cat"]))]

    def test_failure_publishes_error_without_advancing(self):
        state, effects = transition(_processing(1), GenerationFailed(index=1, message="boom"))
        assert state == _idle(1)
        assert effects == [Publish(ErrorMessage(message="boom", path="b.jpg"))]

    def test_result_for_other_index_ignored(self):
        state = _processing(1)
        assert transition(state, GenerationSucceeded(index=0, result=RESULT)) == (state, [])

    def test_result_while_idle_ignored(self):
        state = _idle(1)
        assert transition(state, GenerationFailed(index=1, message="late")) == (state, [])


# ---------------------------------------------------------------------------
# Viewer decisions
# ---------------------------------------------------------------------------


class TestDecisions:
    """Accept/reject advance, regenerate repeats, everything else waits."""

    @pytest.mark.parametrize("decision", ["accept", "reject"])
    def test_advance_to_next_item(self, decision):
        state, effects = transition(_idle(0), ViewerDecision(decision, path="a.png"))
        assert state == _processing(1)
        assert effects == [StartProcessing(index=1, path="b.jpg")]

    def test_regenerate_repeats_same_item(self):
        state, effects = transition(_idle(1), ViewerDecision("regenerate", path="b.jpg"))
        assert state == _processing(1)
        assert effects == [StartProcessing(index=1, path="b.jpg")]

    @pytest.mark.parametrize("decision", ["accept", "reject"])
    def test_last_item_completes(self, decision):
        state, effects = transition(_idle(2), ViewerDecision(decision, path="c.webp"))
        assert state.complete is True
        assert state.in_flight is False
        assert state.cursor == 3
        assert effects == [Publish(CompleteMessage())]

    def test_decision_without_path_applies_to_current(self):
        state, effects = transition(_idle(0), ViewerDecision("accept"))
        assert state.cursor == 1
        assert effects == [StartProcessing(index=1, path="b.jpg")]

    @pytest.mark.parametrize("decision", ["accept", "reject", "regenerate"])
    def test_decision_while_processing_ignored(self, decision):
        state = _processing(0)
        assert transition(state, ViewerDecision(decision, path="a.png")) == (state, [])

    def test_stale_path_ignored(self):
        state = _idle(1)
        assert transition(state, ViewerDecision("accept", path="a.png")) == (state, [])

    def test_unknown_decision_ignored(self):
        state = _idle(0)
        assert transition(state, ViewerDecision("skip", path="a.png")) == (state, [])

    def test_accept_after_failure_is_honored(self):
        state, _ = transition(_processing(0), GenerationFailed(index=0, message="boom"))
        state, effects = transition(state, ViewerDecision("accept", path="a.png", caption="old"))
        assert state.cursor == 1
        assert effects == [StartProcessing(index=1, path="b.jpg")]


# ---------------------------------------------------------------------------
# Complete
# ---------------------------------------------------------------------------


class TestComplete:
    """Complete is terminal and announced exactly once."""

    @pytest.mark.parametrize("event", [
        Start(),
        ViewerConnected(),
        ViewerDecision("accept"),
        ViewerDecision("reject"),
        ViewerDecision("regenerate"),
        GenerationSucceeded(index=3, result=RESULT),
        GenerationFailed(index=3, message="x"),
    ])
    def test_everything_is_noop_after_complete(self, event):
        state = QueueState(items=tuple(ITEMS), cursor=3, started=True)
        assert transition(state, event) == (state, [])

    def test_full_walk_is_monotonic_with_one_complete(self):
        state = QueueState.initial(ITEMS)
        cursors = [state.cursor]
        published = []

        events = [ViewerConnected()]
        for index, path in enumerate(ITEMS):
            events.append(GenerationSucceeded(index=index, result=RESULT))
            events.append(ViewerDecision("accept", path=path))
            events.append(ViewerDecision("accept", path=path))
        events.append(ViewerDecision("reject"))

        for event in events:
            state, effects = transition(state, event)
            cursors.append(state.cursor)
            published.extend(e.message.type for e in effects if isinstance(e, Publish))

        assert cursors == sorted(cursors)
        assert state.complete is True
        assert published.count("complete") == 1

    def test_unknown_event_type_raises(self):
        with pytest.raises(TypeError):
            transition(_idle(0), object())
