"""
Voice API Routes

Call-time TwiML endpoints driving turn-based conversation over a live
call, plus standalone speech-to-text and text-to-speech endpoints.
"""

import base64
import binascii
import logging
from typing import Dict, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field
from twilio.twiml.voice_response import Gather, VoiceResponse

from ...config import Settings
from ...conversation.service import ConversationService
from ...errors import ProviderError, ValidationError
from ...pipeline.turn import TurnPipeline
from ..dependencies import (
    get_conversation_service,
    get_settings,
    get_turn_pipeline,
    verified_callback_params,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/voice", tags=["Voice"])

NO_INPUT_PROMPT = "Sorry, I didn't catch that. Could you say it again?"
FAILURE_PROMPT = "Sorry, I'm having trouble answering right now. Please try again."


# =============================================================================
# Request Models
# =============================================================================


class SpeechToTextRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    audio_data: Optional[str] = Field(default=None, alias="audioData")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    language: str = "en"
    format: str = Field(default="base64", description="base64 or url")


class TextToSpeechRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = None
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    voice_id: Optional[str] = Field(default=None, alias="voiceId")


# =============================================================================
# TwiML helpers
# =============================================================================


def _twiml(response: VoiceResponse) -> Response:
    return Response(content=str(response), media_type="application/xml")


def _turn_query(persona_id: str, conversation_id: str, user_id: str) -> str:
    return urlencode({
        "personaId": persona_id,
        "conversationId": conversation_id,
        "userId": user_id,
    })


def _gather(response: VoiceResponse, settings: Settings, query: str) -> VoiceResponse:
    """Listen for the caller's next utterance, then fall through to /respond."""
    respond_url = f"{settings.webhook_base_url}/api/voice/respond?{query}"
    response.append(
        Gather(
            input="speech",
            action=respond_url,
            method="POST",
            speech_timeout="auto",
        )
    )
    response.redirect(respond_url, method="POST")
    return response


# =============================================================================
# Call-time endpoints
# =============================================================================


@router.post("/stream")
async def voice_stream(
    persona_id: str = Query(..., alias="personaId"),
    conversation_id: str = Query(..., alias="conversationId"),
    user_id: str = Query(..., alias="userId"),
    params: Dict[str, str] = Depends(verified_callback_params),
    settings: Settings = Depends(get_settings),
):
    """Answer a placed call with a greeting and start listening."""
    logger.info(
        "Call answered",
        extra={"call_sid": params.get("CallSid"), "conversation_id": conversation_id},
    )
    response = VoiceResponse()
    response.say(settings.greeting)
    return _twiml(_gather(response, settings, _turn_query(persona_id, conversation_id, user_id)))


@router.post("/respond")
async def voice_respond(
    persona_id: str = Query(..., alias="personaId"),
    conversation_id: str = Query(..., alias="conversationId"),
    user_id: str = Query(..., alias="userId"),
    params: Dict[str, str] = Depends(verified_callback_params),
    settings: Settings = Depends(get_settings),
    pipeline: TurnPipeline = Depends(get_turn_pipeline),
):
    """Run one turn on the caller's speech and speak the reply."""
    query = _turn_query(persona_id, conversation_id, user_id)
    response = VoiceResponse()

    speech = (params.get("SpeechResult") or "").strip()
    if not speech:
        response.say(NO_INPUT_PROMPT)
        return _twiml(_gather(response, settings, query))

    try:
        turn = await pipeline.run_turn(
            conversation_id,
            user_id,
            text=speech,
            persona_id=persona_id,
        )
    except ProviderError as e:
        logger.error(
            f"Turn failed: {e.message}",
            extra={"conversation_id": conversation_id, "provider": e.provider},
        )
        response.say(FAILURE_PROMPT)
        return _twiml(_gather(response, settings, query))

    if turn.audio_url:
        response.play(turn.audio_url)
    elif turn.reply:
        # Synthesis failed; the provider's own TTS still gets the reply across
        response.say(turn.reply)
    else:
        response.say(NO_INPUT_PROMPT)

    return _twiml(_gather(response, settings, query))


# =============================================================================
# Speech-to-text
# =============================================================================


@router.post("/stt")
async def speech_to_text(
    payload: SpeechToTextRequest,
    conversations: ConversationService = Depends(get_conversation_service),
    pipeline: TurnPipeline = Depends(get_turn_pipeline),
):
    """Transcribe base64 audio or an audio URL into a user message."""
    if not payload.audio_data:
        raise ValidationError("Audio data is required", field="audioData")
    if not payload.conversation_id:
        raise ValidationError("Conversation ID is required", field="conversationId")

    conversation = await conversations.get(payload.conversation_id)

    if payload.format == "base64":
        try:
            audio = base64.b64decode(payload.audio_data, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError("Audio data is not valid base64", field="audioData")
        result = await pipeline.transcribe(conversation.id, audio=audio)
    elif payload.format == "url":
        result = await pipeline.transcribe(conversation.id, audio_url=payload.audio_data)
    else:
        raise ValidationError(
            "Invalid format. Supported formats: base64, url", field="format"
        )

    if not result.success:
        raise ProviderError(
            pipeline.transcription.name,
            f"Failed to transcribe audio: {result.error}",
        )

    return {
        "text": result.text,
        "language": result.language or payload.language,
        "messageId": result.message.id if result.message else None,
    }


@router.get("/stt")
async def speech_to_text_status():
    return {"status": "STT service is running"}


# =============================================================================
# Text-to-speech
# =============================================================================


@router.post("/tts")
async def text_to_speech(
    payload: TextToSpeechRequest,
    conversations: ConversationService = Depends(get_conversation_service),
    pipeline: TurnPipeline = Depends(get_turn_pipeline),
):
    """Synthesize text with the resolved voice and store it as an assistant message."""
    if not payload.text or not payload.text.strip():
        raise ValidationError("Text content is required", field="text")
    if not payload.conversation_id:
        raise ValidationError("Conversation ID is required", field="conversationId")

    conversation = await conversations.get(payload.conversation_id)
    persona = await conversations.get_persona(conversation.persona_id)

    result = await pipeline.synthesize(
        payload.text,
        conversation.user_id,
        persona=persona,
        voice_id=payload.voice_id,
        conversation_id=conversation.id,
    )
    if not result.success:
        raise ProviderError(
            pipeline.synthesis.name,
            f"Failed to generate speech: {result.error}",
        )

    return {
        "messageId": result.message.id if result.message else None,
        "audioUrl": result.audio_url,
        "duration": result.duration,
        "voiceId": result.voice_id,
    }


@router.get("/tts")
async def text_to_speech_status():
    return {"status": "TTS service is running"}
