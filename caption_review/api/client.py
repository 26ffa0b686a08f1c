"""Async HTTP client for an OpenAI-compatible vision chat-completions endpoint.

WHY: The caption generator needs to send one multimodal user turn to a
locally hosted vision model (llama.cpp, vLLM, LM Studio, ...) and read
back the text of the reply. This module hides the HTTP details behind a
single client class so the generator only deals with messages and text.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. VisionModelClient is
an async context manager: enter it to open the connection pool, exit to
close it. complete() posts to /chat/completions and returns the content
of the first choice.

RULES:
- Always use the async context manager (async with VisionModelClient() as client:)
- Authorization header is only sent when an API key is configured
- timeout=None (the default) means the call may wait indefinitely
- Raises ModelAPIError on non-2xx responses or a malformed envelope
- httpx transport errors propagate unchanged
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from caption_review.config import MODEL_API_KEY, MODEL_BASE_URL, MODEL_NAME, MODEL_TIMEOUT_S

logger = logging.getLogger(__name__)


class ModelAPIError(Exception):
    """Raised when the model endpoint returns an error or unusable response.

    WHY: Callers need a typed exception to tell endpoint errors apart from
    network errors and parse failures.

    RULES:
    - status_code is the HTTP status (0 when the envelope is malformed)
    - message is the response body text or a summary
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__("Model API error {}: {}".format(status_code, message))


class VisionModelClient:
    """Async client for a chat-completions style vision model.

    RULES:
    - Use as: async with VisionModelClient() as client: ...
    - base_url, model, api_key and timeout default to config values
    - transport is for tests (httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = MODEL_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = (base_url or MODEL_BASE_URL).rstrip("/")
        self._model = model or MODEL_NAME
        self._api_key = MODEL_API_KEY if api_key is None else api_key
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def model(self) -> str:
        return self._model

    async def __aenter__(self) -> VisionModelClient:
        headers = {}
        if self._api_key:
            headers["Authorization"] = "Bearer {}".format(self._api_key)
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "VisionModelClient must be used as an async context manager: "
                "async with VisionModelClient() as client: ..."
            )
        return self._client

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        max_tokens: int,
    ) -> Optional[str]:
        """Send one chat-completions request and return the reply text.

        WHY: The generator only cares about the text of the first choice;
        the response envelope is this client's concern.

        HOW: POSTs {model, messages, max_tokens} to /chat/completions and
        digs out choices[0].message.content.

        RULES:
        - Returns None when the model replied with null content
        - Raises ModelAPIError on non-2xx status
        - Raises ModelAPIError when choices/message are missing

        Args:
            messages: Chat messages in OpenAI format.
            max_tokens: Upper bound on generated tokens.

        Returns:
            The reply text, or None if the model returned no content.
        """
        client = self._ensure_client()
        body = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens,
        }

        resp = await client.post("/chat/completions", json=body)

        if not resp.is_success:
            raise ModelAPIError(resp.status_code, resp.text)

        try:
            data = resp.json()
            content = data["choices"][0]["message"].get("content")
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ModelAPIError(resp.status_code, "Malformed response: {}".format(exc)) from exc

        if isinstance(data, dict) and data.get("usage"):
            logger.debug("Model usage: %s", data["usage"])

        return content
