"""One model invocation per image: prompt, call, repair, validate.

WHY: The review queue needs a single operation that turns image bytes
into a CaptionResult or a clear failure it can show to viewers. Building
the multimodal request and interpreting the reply belong together here,
away from the queue state machine.

HOW: generate() encodes the image as a base64 data URL, pairs it with
the instruction prompt in one user turn, calls the model client, and
hands the reply text to parse_caption_response().

RULES:
- No retries; the viewer's "regenerate" is the retry policy
- Every failure surfaces as GenerationFailure with the original cause
- Empty or blank reply text is a failure, not an empty caption
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional

import httpx

from caption_review.api.client import ModelAPIError, VisionModelClient
from caption_review.config import MAX_TOKENS, load_prompt
from caption_review.core.models import CaptionResult
from caption_review.core.repair import ParseFailure, parse_caption_response

logger = logging.getLogger(__name__)


class GenerationFailure(Exception):
    """Raised when a caption could not be produced for an image.

    WHY: The controller turns any generation problem into an error event.
    One exception type with the original cause attached keeps that simple
    while preserving detail for logs.

    RULES:
    - message is what viewers see
    - cause is the underlying exception (httpx error, ModelAPIError,
      ParseFailure) or None
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)

    @property
    def parse_failure(self) -> Optional[ParseFailure]:
        if isinstance(self.cause, ParseFailure):
            return self.cause
        return None


def build_messages(image_bytes: bytes, mime_type: str, prompt: str) -> List[Dict[str, Any]]:
    """Build the single-turn multimodal chat message for one image."""
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return [
        {
            "role": "user",
            "content": [
                {
                    "type": "image_url",
                    "image_url": {"url": "data:{};base64,{}".format(mime_type, encoded)},
                },
                {"type": "text", "text": prompt},
            ],
        }
    ]


class CaptionGenerator:
    """Generates a caption and tags for one image with a vision model.

    RULES:
    - client must already be entered (async with) by the owner
    - prompt defaults to load_prompt(); max_tokens to MAX_TOKENS
    """

    def __init__(
        self,
        client: VisionModelClient,
        prompt: Optional[str] = None,
        max_tokens: int = MAX_TOKENS,
    ) -> None:
        self._client = client
        self._prompt = prompt if prompt is not None else load_prompt()
        self._max_tokens = max_tokens

    @property
    def prompt(self) -> str:
        return self._prompt

    async def generate(self, image_bytes: bytes, mime_type: str) -> CaptionResult:
        """Caption one image.

        Args:
            image_bytes: Raw image file content.
            mime_type: MIME type used in the data URL (e.g. "image/png").

        Returns:
            The parsed CaptionResult.

        Raises:
            GenerationFailure: On transport error, non-2xx response, empty
                reply, or unrecoverable model output.
        """
        messages = build_messages(image_bytes, mime_type, self._prompt)

        try:
            content = await self._client.complete(messages, max_tokens=self._max_tokens)
        except httpx.HTTPError as exc:
            raise GenerationFailure("Model request failed: {}".format(exc), exc) from exc
        except ModelAPIError as exc:
            raise GenerationFailure(str(exc), exc) from exc

        if content is None or not content.strip():
            raise GenerationFailure("Model returned an empty response")

        try:
            result = parse_caption_response(content)
        except ParseFailure as exc:
            logger.warning("Unparseable model output (%s): %r", exc.reason, exc.raw)
            raise GenerationFailure(str(exc), exc) from exc

        logger.info("Description: %s", result.description)
        logger.info("Tags: %s", ", ".join(result.tags))
        return result
