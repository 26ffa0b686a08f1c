"""Core captioning: response repair and per-image generation.

WHY: Model output handling is the part with real failure modes. Keeping
it separate from the queue and transport lets it be tested in isolation.

RULES:
- CaptionResult is the stable contract between generation and review
"""
