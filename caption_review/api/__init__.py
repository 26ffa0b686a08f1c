"""Vision model client package: async HTTP interface to the captioning model.

WHY: The generator needs to send an image and instruction to a
chat-completions endpoint. This package keeps all HTTP communication
behind one client class.

HOW: Uses httpx.AsyncClient for non-blocking HTTP.

RULES:
- All HTTP calls to the model go through VisionModelClient
- Authentication is via Bearer token when configured
"""

from caption_review.api.client import ModelAPIError, VisionModelClient

__all__ = ["ModelAPIError", "VisionModelClient"]
