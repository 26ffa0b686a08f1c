"""Review engine: queue state machine, controller runtime and viewer fan-out.

WHY: This is the part of the system with real invariants: exactly one
caption in flight, every viewer converging on the same state, and model
failures that never stall the queue.

HOW: state.py holds the pure transition rules, controller.py serializes
events and runs effects, hub.py delivers messages to viewers.
"""

from caption_review.review.controller import QueueController
from caption_review.review.hub import BroadcastHub, TransportFault, ViewerSession
from caption_review.review.state import QueuePhase, QueueState, transition

__all__ = [
    "BroadcastHub",
    "QueueController",
    "QueuePhase",
    "QueueState",
    "TransportFault",
    "ViewerSession",
    "transition",
]
