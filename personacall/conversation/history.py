"""
Conversation History Store

Append-only per-conversation message log with bounded-window retrieval.
"""

from typing import List, Optional

import structlog

from ..database.models import Message, MessageRole
from ..database.repositories import ConversationRepository, MessageRepository


logger = structlog.get_logger(__name__)

# Messages fed to the prompt assembler per turn
HISTORY_WINDOW = 10


class ConversationHistoryStore:
    """Reads and appends conversation messages."""

    def __init__(
        self,
        messages: MessageRepository,
        conversations: ConversationRepository,
        window: int = HISTORY_WINDOW,
    ):
        self.messages = messages
        self.conversations = conversations
        self.window = window

    async def append(
        self,
        conversation_id: str,
        content: str,
        role: str,
        audio_url: Optional[str] = None,
        duration: Optional[float] = None,
    ) -> Message:
        """Insert a message and refresh the conversation's activity time."""
        role = MessageRole(role).value
        message = await self.messages.add(
            conversation_id,
            role,
            content,
            audio_url=audio_url,
            duration=duration,
        )
        await self.conversations.touch(conversation_id, message.created_at)

        logger.debug(
            "message_appended",
            conversation_id=conversation_id,
            role=role,
            message_id=message.id,
        )
        return message

    async def recent_window(
        self,
        conversation_id: str,
        limit: Optional[int] = None,
    ) -> List[Message]:
        """Up to ``limit`` most recent messages, oldest first."""
        limit = self.window if limit is None else limit
        if limit <= 0:
            return []
        newest_first = await self.messages.list_recent(conversation_id, limit)
        return list(reversed(newest_first))

    async def attach_audio(
        self,
        message: Message,
        audio_url: str,
        duration: Optional[float],
    ) -> Message:
        """Record synthesized audio on a message that has none yet."""
        if message.audio_url:
            return message
        message.audio_url = audio_url
        message.duration = duration
        await self.messages.session.flush()
        return message


__all__ = ["ConversationHistoryStore", "HISTORY_WINDOW"]
