"""Pure state machine for the shared review queue.

WHY: The review queue has real invariants: one model call in flight,
a cursor that only moves forward, exactly one "complete" event. Keeping
the rules in a pure function over (state, event) makes them testable
without sockets, tasks or a model.

HOW: QueueState is a frozen dataclass. transition() takes the current
state and one event and returns the next state plus a list of effects
for the runtime to execute in order:

  StartProcessing(index, path)  load the image, publish it, call the model
  Publish(message)              broadcast a message to every viewer

States (derived from the fields):
  idle        cursor < total, not in flight
  processing  cursor < total, in flight
  complete    cursor == total

RULES:
- Only idle states start processing; everything that would start a second
  generation while in flight is a no-op
- Viewer decisions received while processing or complete are ignored
- A decision whose path names another image is stale and ignored
- Accept/reject advance the cursor by one; regenerate keeps it
- Completion events only apply to the in-flight cursor
- ErrorMessage names the failed item so viewers can decide on it
- Entering complete publishes CompleteMessage exactly once
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple, Union

from caption_review.core.models import CaptionResult
from caption_review.server.models import (
    CaptionMessage,
    CompleteMessage,
    ErrorMessage,
    OutboundMessage,
)


class QueuePhase(str, enum.Enum):
    """Observable phase of the review queue."""

    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETE = "complete"


@dataclass(frozen=True)
class QueueState:
    """Position in the fixed image list plus the single-flight guard.

    RULES:
    - items never changes after construction
    - 0 <= cursor <= len(items)
    - in_flight is true exactly while a generation for cursor is outstanding
    - started becomes true the first time processing is triggered
    """

    items: Tuple[str, ...]
    cursor: int = 0
    in_flight: bool = False
    started: bool = False

    @classmethod
    def initial(cls, items: Sequence[str]) -> QueueState:
        if not items:
            raise ValueError("Review queue needs at least one image")
        return cls(items=tuple(str(item) for item in items))

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def complete(self) -> bool:
        return self.cursor >= self.total

    @property
    def current_path(self) -> Optional[str]:
        if self.complete:
            return None
        return self.items[self.cursor]

    @property
    def phase(self) -> QueuePhase:
        if self.complete:
            return QueuePhase.COMPLETE
        if self.in_flight:
            return QueuePhase.PROCESSING
        return QueuePhase.IDLE


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Start:
    """Explicit request to begin processing (autostart)."""


@dataclass(frozen=True)
class ViewerConnected:
    """A viewer session opened."""


@dataclass(frozen=True)
class ViewerDecision:
    """A viewer accepted, rejected or asked to regenerate the current image."""

    decision: str
    path: Optional[str] = None
    caption: Optional[str] = None
    tags: Optional[Union[List[str], str]] = None


@dataclass(frozen=True)
class GenerationSucceeded:
    index: int
    result: CaptionResult


@dataclass(frozen=True)
class GenerationFailed:
    index: int
    message: str


QueueEvent = Union[Start, ViewerConnected, ViewerDecision, GenerationSucceeded, GenerationFailed]

# ---------------------------------------------------------------------------
# Effects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StartProcessing:
    index: int
    path: str


@dataclass(frozen=True)
class Publish:
    message: OutboundMessage


Effect = Union[StartProcessing, Publish]

# ---------------------------------------------------------------------------
# Transition
# ---------------------------------------------------------------------------


def _begin(state: QueueState, cursor: int) -> Tuple[QueueState, List[Effect]]:
    """Move to processing(cursor), or to complete when cursor runs off the end."""
    if cursor >= state.total:
        done = replace(state, cursor=state.total, in_flight=False, started=True)
        return done, [Publish(CompleteMessage())]

    processing = replace(state, cursor=cursor, in_flight=True, started=True)
    return processing, [StartProcessing(index=cursor, path=state.items[cursor])]


def _is_settling(state: QueueState, index: int) -> bool:
    return state.in_flight and not state.complete and index == state.cursor


def transition(state: QueueState, event: QueueEvent) -> Tuple[QueueState, List[Effect]]:
    """Apply one event to the queue state.

    Args:
        state: Current queue state.
        event: The event to apply.

    Returns:
        (next_state, effects). A no-op returns the same state and no effects.
    """
    if isinstance(event, (Start, ViewerConnected)):
        if state.started or state.in_flight or state.complete:
            return state, []
        return _begin(state, state.cursor)

    if isinstance(event, ViewerDecision):
        if state.complete or state.in_flight:
            return state, []
        if event.path is not None and event.path != state.current_path:
            return state, []
        if event.decision == "regenerate":
            return _begin(state, state.cursor)
        if event.decision in ("accept", "reject"):
            return _begin(state, state.cursor + 1)
        return state, []

    if isinstance(event, GenerationSucceeded):
        if not _is_settling(state, event.index):
            return state, []
        result = event.result
        message = CaptionMessage(description=result.description, tags=list(result.tags))
        return replace(state, in_flight=False), [Publish(message)]

    if isinstance(event, GenerationFailed):
        if not _is_settling(state, event.index):
            return state, []
        return replace(state, in_flight=False), [
            Publish(ErrorMessage(message=event.message, path=state.current_path))
        ]

    raise TypeError("Unknown queue event: {!r}".format(event))
