"""Caption Review: human-in-the-loop image captioning with a vision model.

WHY: Vision-language models write useful captions and booru-style tags,
but their output needs a human pass before it can be trusted. This package
walks a fixed list of images one at a time, asks the model for a caption,
and lets any number of connected viewers accept, reject, or regenerate it.

HOW: Four stages: repair (turn raw model text into a CaptionResult),
generate (one model call per image), review (single-flight queue state
machine), broadcast (fan-out to every connected viewer). A FastAPI app
carries the viewer protocol over a WebSocket.

RULES:
- One shared queue and cursor for all viewers
- At most one model call outstanding at any time
- Model failures never stop the queue; they become error events
"""

__version__ = "0.1.0"
