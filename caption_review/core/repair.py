"""Turn raw vision-model text into a validated CaptionResult.

WHY: The model is asked for a raw JSON object but frequently wraps it in
markdown code fences or slips on the syntax (trailing commas, unquoted
keys, a missing closing brace when max_tokens cuts it short). Those are
expected, not exceptional, so parsing is two-tier: strict first, then a
tolerant repair pass.

HOW:
  1. strip_code_fences() removes every ``` marker (with or without a
     language tag) and trims whitespace.
  2. json.loads() on the remainder.
  3. If that fails (bad syntax or nesting too deep),
     json_repair.repair_json() rewrites the text into valid JSON and it is
     parsed again.
  4. The parsed value is validated against CAPTION_SCHEMA.

RULES:
- Missing or mistyped description/tags raise ParseFailure, never a default
- Free text with no recoverable structure raises ParseFailure
- ParseFailure keeps the original raw text for logging
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict

import json_repair
import jsonschema

from caption_review.core.models import CaptionResult

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[A-Za-z0-9_+-]*\s*")

CAPTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["description", "tags"],
    "properties": {
        "description": {"type": "string"},
        "tags": {"type": "array", "items": {"type": "string"}},
    },
}


class ParseFailure(Exception):
    """Raised when model output cannot be recovered into a CaptionResult.

    WHY: Callers (the generator, and through it the controller) need a
    typed failure to report to viewers instead of a fabricated caption.

    RULES:
    - reason is a short human-readable explanation
    - raw is the untouched model output
    """

    def __init__(self, reason: str, raw: str = "") -> None:
        self.reason = reason
        self.raw = raw
        super().__init__("Could not parse model response: {}".format(reason))


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence markers and surrounding whitespace."""
    return _FENCE_RE.sub("", text).strip()


def _tolerant_loads(text: str) -> Any:
    repaired = json_repair.repair_json(text)
    logger.debug("Repaired model output: %r -> %r", text, repaired)
    return json.loads(repaired)


def parse_caption_response(raw: str) -> CaptionResult:
    """Parse the model's text response into a CaptionResult.

    Args:
        raw: The text content of the model's reply.

    Returns:
        The validated CaptionResult.

    Raises:
        ParseFailure: If no {description, tags} object can be recovered.
    """
    cleaned = strip_code_fences(raw or "")
    if not cleaned:
        raise ParseFailure("response is empty", raw or "")

    try:
        data = json.loads(cleaned)
    except (ValueError, RecursionError):
        try:
            data = _tolerant_loads(cleaned)
        except (ValueError, TypeError, RecursionError) as exc:
            raise ParseFailure("repair failed: {}".format(exc), raw) from exc

    try:
        jsonschema.validate(instance=data, schema=CAPTION_SCHEMA)
    except jsonschema.ValidationError as exc:
        raise ParseFailure(exc.message, raw) from exc

    return CaptionResult(description=data["description"], tags=list(data["tags"]))
