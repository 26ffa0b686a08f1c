"""Runtime for the review queue: event loop, image loading, model calls.

WHY: Viewer decisions arrive from many WebSocket handlers at once, and
model calls finish at arbitrary times. The queue rules in state.py assume
events are applied one at a time against the current state. This module
provides that single writer and performs the side effects the rules ask
for.

HOW: submit() puts an event on an asyncio.Queue. run() takes events off
in arrival order, applies transition(), and executes the resulting
effects in order:

  Publish          -> BroadcastHub.publish()
  StartProcessing  -> read the image file, publish the ImageMessage,
                      then start the generator call as a background task

When the generator task resolves it submits GenerationSucceeded or
GenerationFailed back onto the same queue, so completions are serialized
with viewer events.

RULES:
- Only run() mutates the QueueState
- The ImageMessage is published before the model is called
- An unreadable image becomes GenerationFailed for that item
- An exception while applying one event is logged; the loop keeps going
- No timeout is added around the model call here
"""

from __future__ import annotations

import asyncio
import base64
import logging
from pathlib import Path
from typing import Optional, Sequence

from caption_review.config import guess_mime_type
from caption_review.core.generator import CaptionGenerator, GenerationFailure
from caption_review.review.hub import BroadcastHub
from caption_review.review.state import (
    Effect,
    GenerationFailed,
    GenerationSucceeded,
    Publish,
    QueueEvent,
    QueueState,
    StartProcessing,
    ViewerDecision,
    transition,
)
from caption_review.server.models import ImageMessage

logger = logging.getLogger(__name__)


class QueueController:
    """Owns the shared review queue and drives one caption at a time."""

    def __init__(
        self,
        items: Sequence[str],
        generator: CaptionGenerator,
        hub: BroadcastHub,
    ) -> None:
        self._state = QueueState.initial(items)
        self._generator = generator
        self._hub = hub
        self._events: Optional[asyncio.Queue] = None
        self._generation: Optional[asyncio.Task] = None

    @property
    def state(self) -> QueueState:
        return self._state

    def snapshot(self) -> QueueState:
        return self._state

    @property
    def events(self) -> asyncio.Queue:
        # Bound to the running loop on first use.
        if self._events is None:
            self._events = asyncio.Queue()
        return self._events

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    async def submit(self, event: QueueEvent) -> None:
        """Queue an event for the run loop."""
        self.events.put_nowait(event)

    async def run(self) -> None:
        """Apply queued events forever, one at a time, in arrival order."""
        events = self.events
        while True:
            event = await events.get()
            try:
                await self._apply(event)
            except Exception:
                logger.exception("Failed to apply queue event %r", event)
            finally:
                events.task_done()

    async def flush(self) -> None:
        """Wait until every submitted event has been applied."""
        await self.events.join()

    async def drain(self) -> None:
        """Wait until no events are pending and no generation is outstanding."""
        while True:
            await self.flush()
            task = self._generation
            if task is None or task.done():
                return
            await asyncio.wait([task])

    async def shutdown(self) -> None:
        """Cancel an outstanding generation, if any."""
        task = self._generation
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Transition + effects
    # ------------------------------------------------------------------

    async def _apply(self, event: QueueEvent) -> None:
        before = self._state
        after, effects = transition(before, event)
        self._state = after

        if isinstance(event, ViewerDecision):
            self._log_decision(event, applied=bool(effects), state=before)

        for effect in effects:
            await self._execute(effect)

    async def _execute(self, effect: Effect) -> None:
        if isinstance(effect, Publish):
            if effect.message.type == "complete":
                logger.info("All images processed!")
            await self._hub.publish(effect.message)
        elif isinstance(effect, StartProcessing):
            await self._start_processing(effect)
        else:
            raise TypeError("Unknown effect: {!r}".format(effect))

    async def _start_processing(self, effect: StartProcessing) -> None:
        path = Path(effect.path)
        logger.info(
            "Processing [%d/%d]: %s", effect.index + 1, self._state.total, effect.path
        )

        try:
            image_bytes = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            logger.error("Error processing %s: %s", effect.path, exc)
            await self.submit(GenerationFailed(
                index=effect.index,
                message="Could not read image {}: {}".format(effect.path, exc),
            ))
            return

        mime_type = guess_mime_type(path)
        await self._hub.publish(ImageMessage(
            path=effect.path,
            filename=path.name,
            data=base64.b64encode(image_bytes).decode("ascii"),
            mime_type=mime_type,
        ))

        self._generation = asyncio.create_task(
            self._generate(effect.index, effect.path, image_bytes, mime_type)
        )

    async def _generate(self, index: int, path: str, image_bytes: bytes, mime_type: str) -> None:
        try:
            result = await self._generator.generate(image_bytes, mime_type)
        except GenerationFailure as exc:
            logger.error("Error processing %s: %s", path, exc.message)
            event = GenerationFailed(index=index, message=exc.message)
        except Exception as exc:
            logger.exception("Unexpected error processing %s", path)
            event = GenerationFailed(index=index, message=str(exc) or type(exc).__name__)
        else:
            event = GenerationSucceeded(index=index, result=result)
        await self.submit(event)

    @staticmethod
    def _log_decision(event: ViewerDecision, applied: bool, state: QueueState) -> None:
        if not applied:
            logger.info(
                "Ignoring %s for %s (queue is %s at %s)",
                event.decision, event.path, state.phase.value, state.current_path,
            )
            return

        path = event.path or state.current_path
        if event.decision == "accept":
            tags = event.tags
            if isinstance(tags, list):
                tags = ", ".join(tags)
            logger.info("ACCEPTED: %s | Caption: %s | Tags: %s", path, event.caption, tags)
        elif event.decision == "reject":
            logger.info("REJECTED: %s", path)
        else:
            logger.info("REGENERATING: %s", path)
