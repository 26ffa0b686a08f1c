"""FastAPI application serving the viewer page and the review WebSocket.

WHY: Viewers review captions in a browser. They need the HTML page, a
WebSocket that streams queue events to them and carries their decisions
back, and a health endpoint for a quick look at progress.

HOW: create_app() wires one BroadcastHub and one QueueController around
the image list. The lifespan opens the model client and starts the
controller's run loop; the WebSocket handler registers each viewer with
the hub and turns inbound JSON into queue events.

RULES:
- GET / serves the packaged static/index.html
- GET /health reports cursor, total, phase and viewer count
- WS /ws: register, submit ViewerConnected, then forward decisions
- Malformed inbound messages (bad JSON, binary frames) are logged; the
  viewer stays connected
- Unknown inbound message types are ignored
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path
from typing import Optional, Sequence

from fastapi import FastAPI, WebSocket
from fastapi.responses import HTMLResponse, PlainTextResponse, Response
from pydantic import ValidationError

from caption_review import __version__
from caption_review.api.client import VisionModelClient
from caption_review.config import MAX_TOKENS
from caption_review.core.generator import CaptionGenerator
from caption_review.review.controller import QueueController
from caption_review.review.hub import BroadcastHub, ViewerSession
from caption_review.review.state import Start, ViewerConnected, ViewerDecision
from caption_review.server.models import HealthResponse, ViewerMessage

logger = logging.getLogger(__name__)

INDEX_HTML = Path(__file__).parent / "static" / "index.html"


def parse_viewer_message(raw: str) -> Optional[ViewerDecision]:
    """Turn one inbound WebSocket frame into a queue event.

    RULES:
    - Returns None for well-formed messages with an unknown type
    - Raises pydantic.ValidationError for invalid JSON or structure
    """
    message = ViewerMessage.model_validate_json(raw)
    if not message.is_decision:
        return None
    return ViewerDecision(
        decision=message.type,
        path=message.path,
        caption=message.caption,
        tags=message.tags,
    )


def create_app(
    items: Sequence[str],
    generator: Optional[CaptionGenerator] = None,
    base_url: Optional[str] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    max_tokens: int = MAX_TOKENS,
    prompt: Optional[str] = None,
    autostart: bool = False,
) -> FastAPI:
    """Build the review app for a fixed list of images.

    WHY: The image list is only known at startup (from the CLI), so the
    app, hub and controller are created together rather than as module
    singletons.

    HOW: When no generator is passed, a VisionModelClient and
    CaptionGenerator are built from the given options; the client is
    entered in the lifespan. The controller's run loop is a task for the
    lifetime of the app.

    RULES:
    - Raises ValueError for an empty image list
    - autostart submits Start on startup instead of waiting for a viewer
    - app.state.controller and app.state.hub expose the live objects

    Args:
        items: Image paths, in review order.
        generator: Pre-built generator (tests); skips client creation.
        base_url: Model endpoint base URL override.
        model: Model name override.
        api_key: Model API key override.
        max_tokens: Token bound for each caption.
        prompt: Instruction prompt override.
        autostart: Start captioning before any viewer connects.

    Returns:
        The configured FastAPI app.
    """
    client: Optional[VisionModelClient] = None
    if generator is None:
        client = VisionModelClient(base_url=base_url, model=model, api_key=api_key)
        generator = CaptionGenerator(client, prompt=prompt, max_tokens=max_tokens)

    hub = BroadcastHub()
    controller = QueueController(items, generator, hub)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the model client and run the controller loop."""
        async with AsyncExitStack() as stack:
            if client is not None:
                await stack.enter_async_context(client)
                logger.info("Using model %s", client.model)

            task = asyncio.create_task(controller.run())
            if autostart:
                await controller.submit(Start())
            try:
                yield
            finally:
                await controller.shutdown()
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    app = FastAPI(
        lifespan=lifespan,
        title="Caption Review",
        description=(
            "Human-in-the-loop review of vision-model captions and tags. "
            "Viewers connect over a WebSocket at /ws."
        ),
        version=__version__,
    )
    app.state.controller = controller
    app.state.hub = hub

    @app.get("/", include_in_schema=False)
    async def index() -> Response:
        try:
            html = INDEX_HTML.read_text(encoding="utf-8")
        except OSError:
            return PlainTextResponse("index.html not found", status_code=404)
        return HTMLResponse(html)

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
        summary="Health check",
        description="Liveness check with the review queue's progress.",
    )
    async def health_check() -> HealthResponse:
        state = controller.snapshot()
        return HealthResponse(
            status="ok",
            version=__version__,
            cursor=state.cursor,
            total=state.total,
            phase=state.phase.value,
            viewers=len(hub),
        )

    @app.websocket("/ws")
    async def viewer_socket(websocket: WebSocket) -> None:
        # Must be in the hub before the handshake completes.
        session = ViewerSession(websocket)
        hub.register(session)

        try:
            await websocket.accept()
            await controller.submit(ViewerConnected())
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    break
                raw = frame.get("text")
                if raw is None:
                    logger.warning("Ignoring non-text viewer frame")
                    continue
                try:
                    event = parse_viewer_message(raw)
                except ValidationError as exc:
                    logger.warning("Error handling message: %s", exc)
                    continue
                if event is None:
                    logger.debug("Ignoring viewer message: %s", raw)
                    continue
                await controller.submit(event)
        finally:
            hub.unregister(session)

    return app
