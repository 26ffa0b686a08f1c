"""Shared test fixtures for the caption_review test suite.

WHY: The controller, hub and app tests all need the same stand-ins: a
viewer session that records what it receives, a caption generator that
can be held open or made to fail, and a couple of real image files on
disk.

HOW: Fake classes live here and are handed out through fixtures, so test
modules never import conftest directly.

RULES:
- FakeSession records decoded JSON messages in .received
- FakeGenerator records every call; outcomes are consumed in order and
  default to DEFAULT_RESULT
- An outcome that is an exception instance is raised instead of returned
- FakeGenerator.gate (an asyncio.Event) holds every call until set
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from caption_review.core.models import CaptionResult
from caption_review.review.hub import TransportFault

DEFAULT_RESULT = CaptionResult(description="An orange cat on a sofa.", tags=["cat", "orange", "sofa"])

# Smallest valid-looking payloads; the review engine never decodes them.
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 16


class FakeSession:
    """A viewer session that records every message it is sent."""

    def __init__(self, is_open: bool = True, fail: bool = False) -> None:
        self.is_open = is_open
        self.fail = fail
        self.received: List[Dict[str, Any]] = []

    async def send(self, text: str) -> None:
        if self.fail:
            raise TransportFault("connection reset")
        self.received.append(json.loads(text))

    @property
    def types(self) -> List[str]:
        return [message["type"] for message in self.received]


class FakeGenerator:
    """A caption generator with scripted outcomes."""

    def __init__(self, outcomes: Optional[List[Any]] = None) -> None:
        self.outcomes = list(outcomes or [])
        self.calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None

    def hold(self) -> asyncio.Event:
        """Make every call wait until the returned event is set."""
        self.gate = asyncio.Event()
        return self.gate

    async def generate(self, image_bytes: bytes, mime_type: str) -> CaptionResult:
        self.calls.append((image_bytes, mime_type))
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if self.outcomes else DEFAULT_RESULT
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def make_session():
    """Factory for FakeSession instances."""
    return FakeSession


@pytest.fixture
def make_generator():
    """Factory for FakeGenerator instances."""
    return FakeGenerator


@pytest.fixture
def default_result() -> CaptionResult:
    return DEFAULT_RESULT


@pytest.fixture
def image_paths(tmp_path: Path) -> List[str]:
    """Two real image files: a PNG and a JPEG."""
    first = tmp_path / "first.png"
    first.write_bytes(PNG_BYTES)
    second = tmp_path / "second.jpg"
    second.write_bytes(JPEG_BYTES)
    return [str(first), str(second)]


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES
