"""
AI API Routes

Reply generation and persona listing.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from ...conversation.history import ConversationHistoryStore
from ...conversation.service import ConversationService
from ...database.models import MessageRole
from ...database.repositories import PersonaRepository
from ...errors import ValidationError
from ...pipeline.turn import TurnPipeline
from ..dependencies import (
    get_conversation_service,
    get_history_store,
    get_persona_repository,
    get_turn_pipeline,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["AI"])


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transcribed_text: Optional[str] = Field(default=None, alias="transcribedText")
    persona_id: Optional[str] = Field(default=None, alias="personaId")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")


@router.post("/generate")
async def generate_response(
    payload: GenerateRequest,
    conversations: ConversationService = Depends(get_conversation_service),
    history: ConversationHistoryStore = Depends(get_history_store),
    pipeline: TurnPipeline = Depends(get_turn_pipeline),
):
    """Generate the persona's reply, storing both sides when a conversation is given."""
    if not payload.transcribed_text or not payload.persona_id:
        raise ValidationError("Missing required fields: transcribedText or personaId")

    persona = await conversations.get_persona(payload.persona_id)

    user_message = None
    if payload.conversation_id:
        await conversations.get(payload.conversation_id)
        user_message = await history.append(
            payload.conversation_id,
            payload.transcribed_text,
            MessageRole.USER.value,
        )

    reply = await pipeline.generate_reply(
        payload.transcribed_text,
        persona,
        payload.conversation_id,
        exclude_message_id=user_message.id if user_message else None,
    )
    return {"response": reply.text}


@router.get("/generate")
async def generate_status():
    return {"status": "AI generation service is running"}


@router.get("/persona")
async def list_personas(
    personas: PersonaRepository = Depends(get_persona_repository),
):
    """Active personas, oldest first."""
    items = await personas.list_active()
    return {
        "personas": [
            {
                "id": persona.id,
                "name": persona.name,
                "description": persona.description,
                "imageUrl": persona.image_url,
            }
            for persona in items
        ]
    }
