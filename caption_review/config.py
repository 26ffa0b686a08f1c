"""Configuration constants, the default caption prompt, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. The model endpoint, prompt text, server address and
image MIME mapping are plain data, not buried in logic, so they can be
changed without touching the review engine.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level values with environment overrides. load_prompt() swaps in
a prompt file when one is configured.

RULES:
- All defaults can be overridden via environment variables
- CLI flags take precedence over environment values
- MODEL_TIMEOUT_S unset means no timeout on the model call
- Unknown image extensions fall back to image/jpeg
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional, Union

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Model endpoint
# ---------------------------------------------------------------------------

MODEL_BASE_URL = os.getenv("MODEL_BASE_URL", "http://localhost:8088/v1")
MODEL_NAME = os.getenv("MODEL_NAME", "Llama-Joycaption-Beta-One-Hf-Llava-Q4_K.gguf")
MODEL_API_KEY = os.getenv("MODEL_API_KEY", "")
MAX_TOKENS = int(os.getenv("CAPTION_MAX_TOKENS", "300"))
CAPTION_PROMPT_FILE = os.getenv("CAPTION_PROMPT_FILE") or None


def _parse_timeout(value: Optional[str]) -> Optional[float]:
    if value is None or not value.strip():
        return None
    return float(value)


MODEL_TIMEOUT_S = _parse_timeout(os.getenv("MODEL_TIMEOUT_S"))
"""Per-request timeout for the model call in seconds, or None for no limit."""

# ---------------------------------------------------------------------------
# Viewer server
# ---------------------------------------------------------------------------

HTTP_HOST = os.getenv("HTTP_HOST", "0.0.0.0")
HTTP_PORT = int(os.getenv("HTTP_PORT", "8888"))
VIEWER_SEND_TIMEOUT_S = float(os.getenv("VIEWER_SEND_TIMEOUT_S", "10"))
"""Longest a single viewer send may take before that viewer is dropped."""

# ---------------------------------------------------------------------------
# Caption prompt
# ---------------------------------------------------------------------------

DEFAULT_CAPTION_PROMPT = """\
Write a straightforward description for this image. Begin with the main subject and medium. \
Mention pivotal elements (people, objects, scenery) using confident, definite language. \
When describing people, pay particular attention to: Hair color (blonde, black hair, brunette, etc), \
race (white, black, asian), Gender, Tattoos, and clothing. Use bold, simple descriptions, \
such as colors, garment names, etc. Focus on concrete details like color, shape, quantity, \
texture, and spatial relationships. Show how elements interact. Omit mood and speculative wording. \
If text is present, quote it exactly. Note any watermarks, signatures, or compression artifacts. \
Never mention what's absent, resolution, or unobservable details. Vary your sentence structure \
and keep the description concise, without starting with "This image is..." or similar phrasing.

Write a json-formatted list of booru-like tags for this image.

Return the results in a JSON object, under the "description" and "tags" keys. \
Do not return any text outside the JSON. Do not return markdown, return just a raw json object
"""


def load_prompt(path: Optional[Union[str, Path]] = None) -> str:
    """Return the caption instruction prompt.

    WHY: The prompt is a contract with the model, not logic. Operators
    tune it for different models without editing code.

    HOW: Reads the given file, else CAPTION_PROMPT_FILE, else returns
    DEFAULT_CAPTION_PROMPT.

    RULES:
    - Raises ValueError if the prompt file is empty
    - OSError from reading the file propagates to the caller
    """
    source = path or CAPTION_PROMPT_FILE
    if source is None:
        return DEFAULT_CAPTION_PROMPT

    text = Path(source).read_text(encoding="utf-8")
    if not text.strip():
        raise ValueError("Prompt file is empty: {}".format(source))
    return text


# ---------------------------------------------------------------------------
# Image MIME types
# ---------------------------------------------------------------------------

IMAGE_MIME_TYPES: Dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"


def guess_mime_type(path: Union[str, Path]) -> str:
    """Map an image path to the MIME type sent to the model and viewers."""
    return IMAGE_MIME_TYPES.get(Path(path).suffix.lower(), DEFAULT_IMAGE_MIME_TYPE)
