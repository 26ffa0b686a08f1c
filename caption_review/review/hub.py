"""Connected viewer sessions and best-effort fan-out.

WHY: Every viewer watches the same queue. Each state change (new image,
caption, error, completion) must reach all of them, and one viewer
closing its tab mid-send must not stall or break delivery to the rest.

HOW: BroadcastHub keeps a plain set of sessions. publish() serializes
the message once, takes a snapshot of the set, and sends to every open
session concurrently with asyncio.gather. Failed sessions are dropped, as
is any session whose send takes longer than send_timeout.

RULES:
- publish() never raises because of a viewer
- publish() returns within send_timeout no matter how slow a viewer is
- register/unregister are safe while a publish is iterating (snapshot)
- No backlog or replay: late joiners only see future messages
- ViewerSession.send raises TransportFault for closed or broken channels
"""

from __future__ import annotations

import asyncio
import logging
from typing import Set

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from caption_review.config import VIEWER_SEND_TIMEOUT_S
from caption_review.server.models import OutboundMessage

logger = logging.getLogger(__name__)


class TransportFault(Exception):
    """Raised when a viewer channel is closed or fails during send."""


class ViewerSession:
    """One connected viewer, wrapping a FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, text: str) -> None:
        if not self.is_open:
            raise TransportFault("Viewer channel is closed")
        try:
            await self._websocket.send_text(text)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            raise TransportFault(str(exc)) from exc


class BroadcastHub:
    """The set of connected viewers and fan-out to all of them.

    Sessions only need ``is_open`` and ``async send(text)``; tests use
    plain fakes.
    """

    def __init__(self, send_timeout: float = VIEWER_SEND_TIMEOUT_S) -> None:
        self._sessions: Set[ViewerSession] = set()
        self._send_timeout = send_timeout

    def __len__(self) -> int:
        return len(self._sessions)

    def register(self, session: ViewerSession) -> None:
        self._sessions.add(session)
        logger.info("Client connected. Total clients: %d", len(self._sessions))

    def unregister(self, session: ViewerSession) -> None:
        if session in self._sessions:
            self._sessions.discard(session)
            logger.info("Client disconnected. Total clients: %d", len(self._sessions))

    async def publish(self, message: OutboundMessage) -> None:
        """Deliver a message to every open session, skipping failures."""
        text = message.model_dump_json(by_alias=True)
        sessions = [session for session in list(self._sessions) if session.is_open]
        if not sessions:
            logger.debug("No open viewers for %s message", message.type)
            return
        await asyncio.gather(*(self._deliver(session, text) for session in sessions))

    async def _deliver(self, session: ViewerSession, text: str) -> None:
        try:
            await asyncio.wait_for(session.send(text), self._send_timeout)
        except asyncio.TimeoutError:
            logger.warning("Dropping viewer: send took longer than %.1fs", self._send_timeout)
            self._sessions.discard(session)
        except TransportFault as exc:
            logger.debug("Dropping closed viewer: %s", exc)
            self._sessions.discard(session)
        except Exception:
            logger.exception("Failed to deliver message to viewer")
            self._sessions.discard(session)
