"""
Calls Module

Call state machine and lifecycle management.
"""

from .manager import (
    CallLifecycleManager,
    InboundResult,
    InitiatedCall,
    StatusUpdate,
    parse_duration,
)
from .state import (
    ENDING_STATUSES,
    TERMINAL_STATUSES,
    CallStatus,
    TransitionOutcome,
    evaluate_transition,
    normalize_status,
)

__all__ = [
    "CallLifecycleManager",
    "InitiatedCall",
    "StatusUpdate",
    "InboundResult",
    "parse_duration",
    "CallStatus",
    "TERMINAL_STATUSES",
    "ENDING_STATUSES",
    "TransitionOutcome",
    "evaluate_transition",
    "normalize_status",
]
