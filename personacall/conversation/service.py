"""
Conversation Service

Resolves the persona and conversation a turn or call runs against, and
ends or archives conversation threads.
"""

from typing import Optional

import structlog

from ..database.models import Conversation, Persona, User
from ..database.repositories import (
    ConversationRepository,
    PersonaRepository,
    UserPreferencesRepository,
)
from ..errors import NotFoundError, ValidationError


logger = structlog.get_logger(__name__)


class ConversationService:
    """Persona and conversation resolution for calls and turns."""

    def __init__(
        self,
        conversations: ConversationRepository,
        personas: PersonaRepository,
        preferences: UserPreferencesRepository,
    ):
        self.conversations = conversations
        self.personas = personas
        self.preferences = preferences

    async def get_persona(self, persona_id: str) -> Persona:
        persona = await self.personas.get_by_id(persona_id)
        if persona is None:
            raise NotFoundError("Persona", persona_id, message="Persona not found")
        return persona

    async def resolve_persona(self, user: User, persona_id: Optional[str] = None) -> Persona:
        """
        Pick the persona for a new call.

        Order: the explicit id, the user's preferred default persona, then
        the system default persona. The result must be active.
        """
        if persona_id:
            persona = await self.get_persona(persona_id)
        else:
            persona = None
            prefs = await self.preferences.get_by_user(user.id)
            if prefs is not None and prefs.default_persona_id:
                persona = await self.personas.get_by_id(prefs.default_persona_id)
            if persona is None or not persona.is_active:
                persona = await self.personas.get_default()
            if persona is None:
                raise NotFoundError("Persona", message="No persona specified and no default persona found")

        if not persona.is_active:
            raise ValidationError("Persona is not active", field="personaId")
        return persona

    async def get_owned(self, conversation_id: str, user_id: str) -> Conversation:
        """Load a conversation, requiring it to belong to ``user_id``."""
        conversation = await self.conversations.get_by_id(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            raise NotFoundError("Conversation", conversation_id)
        return conversation

    async def get(self, conversation_id: str) -> Conversation:
        conversation = await self.conversations.get_by_id(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation", conversation_id)
        return conversation

    async def start(
        self,
        user_id: str,
        persona_id: str,
        title: Optional[str] = None,
    ) -> Conversation:
        conversation = await self.conversations.create(
            user_id=user_id,
            persona_id=persona_id,
            title=title,
        )
        logger.info(
            "conversation_started",
            conversation_id=conversation.id,
            user_id=user_id,
            persona_id=persona_id,
        )
        return conversation

    async def resolve_or_create(
        self,
        user: User,
        persona: Persona,
        conversation_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Conversation:
        """
        Continue an existing conversation or open a new one.

        An existing conversation must belong to the user and must not be
        archived.
        """
        if conversation_id:
            conversation = await self.get_owned(conversation_id, user.id)
            if conversation.is_archived:
                raise ValidationError(
                    "Conversation is archived", field="conversationId"
                )
            return conversation
        return await self.start(user.id, persona.id, title=title)

    async def end(self, conversation_id: str) -> Conversation:
        """Stamp ``ended_at``; a conversation is only ever ended once."""
        conversation = await self.get(conversation_id)
        if await self.conversations.mark_ended(conversation_id):
            logger.info("conversation_ended", conversation_id=conversation_id)
        return conversation

    async def archive(self, conversation_id: str) -> Conversation:
        """Archive the thread, ending it first if still open."""
        conversation = await self.end(conversation_id)
        if not conversation.is_archived:
            conversation.is_archived = True
            await self.conversations.session.flush()
            logger.info("conversation_archived", conversation_id=conversation_id)
        return conversation


__all__ = ["ConversationService"]
