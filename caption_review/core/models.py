"""Caption result dataclass shared by the repairer, generator and controller.

WHY: Every stage after the model call works with the same two fields.
A typed dataclass keeps that contract explicit.

RULES:
- description is the natural-language caption, possibly empty
- tags keeps the model's order
- Results are ephemeral; nothing retains them after broadcast
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class CaptionResult:
    """A validated caption for one image."""

    description: str
    tags: List[str] = field(default_factory=list)
