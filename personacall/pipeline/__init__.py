"""
Pipeline Module

Conversational turn orchestration.
"""

from .turn import (
    ReplyResult,
    SynthesisResult,
    TranscriptionResult,
    TurnPipeline,
    TurnResult,
    estimate_duration,
)

__all__ = [
    "TurnPipeline",
    "TurnResult",
    "TranscriptionResult",
    "ReplyResult",
    "SynthesisResult",
    "estimate_duration",
]
