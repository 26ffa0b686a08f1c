"""HTTP/WebSocket shell for the review queue.

WHY: Viewers reach the review engine through a browser. This package
holds the FastAPI app and the wire models for the viewer protocol.
"""
