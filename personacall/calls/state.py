"""
Call State Machine

Closed set of call statuses with an explicit transition table.

    initiated -> ringing -> in_progress -> completed | failed | canceled
    initiated | ringing -> busy | no_answer | failed | canceled | completed

No transition leaves a terminal status.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional


class CallStatus(str, Enum):
    """Lifecycle status of a telephony attempt."""

    INITIATED = "initiated"
    RINGING = "ringing"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BUSY = "busy"
    NO_ANSWER = "no_answer"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[CallStatus] = frozenset({
    CallStatus.COMPLETED,
    CallStatus.FAILED,
    CallStatus.BUSY,
    CallStatus.NO_ANSWER,
    CallStatus.CANCELED,
})

# Statuses that close out the call log with end time and duration
ENDING_STATUSES: FrozenSet[CallStatus] = frozenset({
    CallStatus.COMPLETED,
    CallStatus.FAILED,
})

TRANSITIONS: Dict[CallStatus, FrozenSet[CallStatus]] = {
    CallStatus.INITIATED: frozenset({
        CallStatus.RINGING,
        CallStatus.IN_PROGRESS,
        CallStatus.COMPLETED,
        CallStatus.FAILED,
        CallStatus.BUSY,
        CallStatus.NO_ANSWER,
        CallStatus.CANCELED,
    }),
    CallStatus.RINGING: frozenset({
        CallStatus.IN_PROGRESS,
        CallStatus.COMPLETED,
        CallStatus.FAILED,
        CallStatus.BUSY,
        CallStatus.NO_ANSWER,
        CallStatus.CANCELED,
    }),
    CallStatus.IN_PROGRESS: frozenset({
        CallStatus.COMPLETED,
        CallStatus.FAILED,
        CallStatus.CANCELED,
    }),
    CallStatus.COMPLETED: frozenset(),
    CallStatus.FAILED: frozenset(),
    CallStatus.BUSY: frozenset(),
    CallStatus.NO_ANSWER: frozenset(),
    CallStatus.CANCELED: frozenset(),
}

# Provider spellings that differ from ours
_ALIASES = {
    "queued": CallStatus.INITIATED,
    "answered": CallStatus.IN_PROGRESS,
    "in-progress": CallStatus.IN_PROGRESS,
    "inprogress": CallStatus.IN_PROGRESS,
    "no-answer": CallStatus.NO_ANSWER,
    "noanswer": CallStatus.NO_ANSWER,
    "cancelled": CallStatus.CANCELED,
}


class TransitionOutcome(str, Enum):
    """Result of applying a status to a call."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"


def normalize_status(raw: Optional[str]) -> Optional[CallStatus]:
    """Map a provider status string onto CallStatus, or None if unknown."""
    if not raw:
        return None
    value = raw.strip().lower()
    if value in _ALIASES:
        return _ALIASES[value]
    try:
        return CallStatus(value.replace("-", "_"))
    except ValueError:
        return None


def can_transition(current: CallStatus, requested: CallStatus) -> bool:
    return requested in TRANSITIONS[current]


def evaluate_transition(current: CallStatus, requested: CallStatus) -> TransitionOutcome:
    """Classify ``current -> requested`` without raising."""
    if current == requested:
        return TransitionOutcome.DUPLICATE
    if can_transition(current, requested):
        return TransitionOutcome.APPLIED
    return TransitionOutcome.REJECTED


__all__ = [
    "CallStatus",
    "TERMINAL_STATUSES",
    "ENDING_STATUSES",
    "TRANSITIONS",
    "TransitionOutcome",
    "normalize_status",
    "can_transition",
    "evaluate_transition",
]
