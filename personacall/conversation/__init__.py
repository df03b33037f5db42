"""
Conversation Module

Prompt assembly, bounded history and conversation lifecycle.
"""

from .history import HISTORY_WINDOW, ConversationHistoryStore
from .prompts import STOP_MARKERS, build_prompt, clean_response, format_history
from .service import ConversationService

__all__ = [
    "HISTORY_WINDOW",
    "ConversationHistoryStore",
    "STOP_MARKERS",
    "build_prompt",
    "clean_response",
    "format_history",
    "ConversationService",
]
