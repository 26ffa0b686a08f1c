"""Pydantic models for the viewer WebSocket protocol and HTTP responses.

WHY: Viewers and the server exchange JSON messages over the WebSocket.
Typed models keep the field names (including the camelCase mimeType the
browser expects) in one place and validate inbound decisions.

HOW: Each outbound message type has its own model with a Literal "type"
field. Inbound messages share one model; the "type" is checked against
DECISION_TYPES separately so unknown types can be ignored rather than
rejected.

RULES:
- Outbound models serialize by alias (mime_type -> mimeType)
- Inbound tags may be a list of strings or one comma-joined string
- Unknown inbound types are not an error
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field

DECISION_TYPES = ("accept", "reject", "regenerate")

# ---------------------------------------------------------------------------
# Outbound (server -> viewer)
# ---------------------------------------------------------------------------


class ImageMessage(BaseModel):
    """The image currently being captioned, sent before the model call."""

    type: Literal["image"] = "image"
    path: str = Field(description="Image path as given on the command line.")
    filename: str = Field(description="Base name of the image file.")
    data: str = Field(description="Base64-encoded image bytes.")
    mime_type: str = Field(serialization_alias="mimeType", description="Image MIME type.")


class CaptionMessage(BaseModel):
    """A generated caption for the current image."""

    type: Literal["caption"] = "caption"
    description: str
    tags: List[str] = Field(default_factory=list)


class ErrorMessage(BaseModel):
    """Processing for the current image failed; the queue stays put.

    Carries the failed item's path, since an unreadable image never gets an
    ImageMessage and viewers would otherwise still hold the previous path.
    """

    type: Literal["error"] = "error"
    message: str
    path: Optional[str] = Field(default=None, description="Path of the item that failed.")


class CompleteMessage(BaseModel):
    """Every image has been decided."""

    type: Literal["complete"] = "complete"


OutboundMessage = Union[ImageMessage, CaptionMessage, ErrorMessage, CompleteMessage]

# ---------------------------------------------------------------------------
# Inbound (viewer -> server)
# ---------------------------------------------------------------------------


class ViewerMessage(BaseModel):
    """A message from a viewer. Only DECISION_TYPES are acted on."""

    type: str
    path: Optional[str] = None
    caption: Optional[str] = None
    tags: Optional[Union[List[str], str]] = None

    @property
    def is_decision(self) -> bool:
        return self.type in DECISION_TYPES


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Health check response with queue progress."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="Package version string.")
    cursor: int = Field(description="Index of the current image.")
    total: int = Field(description="Number of images in the queue.")
    phase: str = Field(description="Queue phase: idle, processing or complete.")
    viewers: int = Field(description="Number of connected viewers.")
