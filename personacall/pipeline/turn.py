"""
Turn Pipeline

Orchestrates one conversational exchange:

    audio -> transcription -> voice resolution -> prompt assembly
          -> completion -> speech synthesis -> persistence

Transcription and synthesis failures come back as results carrying an
``error``; completion failures raise ProviderError. Nothing is retried
here, and a failing stage never undoes the stages before it.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from ..billing.guard import CreditGuard
from ..conversation.history import ConversationHistoryStore
from ..conversation.prompts import build_prompt, clean_response
from ..conversation.service import ConversationService
from ..core.logging import LogContext
from ..database.models import Message, MessageRole, Persona, VoiceProfile
from ..errors import AccessDenied, NoVoiceAvailable, ValidationError
from ..providers.base import (
    CompletionProvider,
    SpeechSynthesisProvider,
    TranscriptionProvider,
)
from ..providers.storage import AudioStore
from ..providers.together import DEFAULT_STOP
from ..voice.resolver import VoiceResolver


logger = structlog.get_logger(__name__)

# Speaking-rate estimate: five characters per word, 150 words per minute
CHARS_PER_WORD = 5
WORDS_PER_MINUTE = 150


def estimate_duration(text: str) -> float:
    """Rough spoken length of ``text`` in seconds."""
    words = len(text) / CHARS_PER_WORD
    return round(words / WORDS_PER_MINUTE * 60, 2)


@dataclass
class TranscriptionResult:
    text: str = ""
    error: Optional[str] = None
    message: Optional[Message] = None
    language: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class ReplyResult:
    text: str
    message: Optional[Message] = None
    prompt: str = ""


@dataclass
class SynthesisResult:
    audio_url: Optional[str] = None
    duration: Optional[float] = None
    voice_id: Optional[str] = None
    error: Optional[str] = None
    message: Optional[Message] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class TurnResult:
    """Outcome of a full turn; ``error`` names the stage that failed."""

    transcript: Optional[str] = None
    reply: Optional[str] = None
    audio_url: Optional[str] = None
    duration: Optional[float] = None
    error: Optional[str] = None
    failed_stage: Optional[str] = None
    messages: List[Message] = field(default_factory=list)


class TurnPipeline:
    """Runs turns for both the texting and the calling surfaces."""

    def __init__(
        self,
        transcription: TranscriptionProvider,
        completion: CompletionProvider,
        synthesis: SpeechSynthesisProvider,
        audio_store: AudioStore,
        history: ConversationHistoryStore,
        conversations: ConversationService,
        voices: VoiceResolver,
        guard: CreditGuard,
    ):
        self.transcription = transcription
        self.completion = completion
        self.synthesis = synthesis
        self.audio_store = audio_store
        self.history = history
        self.conversations = conversations
        self.voices = voices
        self.guard = guard

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    async def transcribe(
        self,
        conversation_id: Optional[str],
        audio: Optional[bytes] = None,
        audio_url: Optional[str] = None,
    ) -> TranscriptionResult:
        """Transcribe audio and store the transcript as a user message."""
        if audio:
            result = await self.transcription.transcribe(audio)
        elif audio_url:
            result = await self.transcription.transcribe_url(audio_url)
        else:
            raise ValidationError("Audio data is required", field="audioData")

        if not result.success:
            logger.error(
                "transcription_failed",
                conversation_id=conversation_id,
                provider=result.provider,
                error=result.message,
            )
            return TranscriptionResult(error=result.message)

        transcript = result.value
        message = None
        if conversation_id and transcript.text:
            message = await self.history.append(
                conversation_id, transcript.text, MessageRole.USER.value
            )
        return TranscriptionResult(
            text=transcript.text,
            message=message,
            language=transcript.language,
        )

    async def generate_reply(
        self,
        user_input: str,
        persona: Persona,
        conversation_id: Optional[str] = None,
        exclude_message_id: Optional[str] = None,
        persist: bool = True,
    ) -> ReplyResult:
        """
        Complete a reply to ``user_input`` in the persona's voice.

        ``exclude_message_id`` drops the already-stored copy of the
        current user input from the history block.
        """
        history: List[Message] = []
        if conversation_id:
            window = self.history.window
            fetched = await self.history.recent_window(conversation_id, window + 1)
            history = [m for m in fetched if m.id != exclude_message_id][-window:]

        prompt = build_prompt(
            user_input,
            persona.prompt_template,
            history,
            include_context=persona.memory_enabled,
        )

        result = await self.completion.complete(prompt, stop=DEFAULT_STOP)
        if not result.success:
            logger.error(
                "completion_failed",
                conversation_id=conversation_id,
                provider=result.provider,
                kind=result.kind.value if result.kind else None,
                error=result.message,
            )
            raise result.to_error()

        reply = clean_response(result.value.text)
        message = None
        if conversation_id and persist:
            message = await self.history.append(
                conversation_id, reply, MessageRole.ASSISTANT.value
            )
        return ReplyResult(text=reply, message=message, prompt=prompt)

    async def resolve_voice(
        self,
        user_id: str,
        persona: Optional[Persona] = None,
        voice_id: Optional[str] = None,
    ) -> VoiceProfile:
        """
        Pick the voice for ``user_id`` and check the user may use it.

        Raises:
            NoVoiceAvailable: the fallback chain found nothing
            AccessDenied: premium voice for a FREE-tier user
        """
        voice = await self.voices.resolve(voice_id, persona, user_id)
        await self.guard.require_premium_access(
            user_id,
            voice.is_premium,
            message="This voice requires a premium subscription",
        )
        return voice

    async def synthesize(
        self,
        text: str,
        user_id: str,
        persona: Optional[Persona] = None,
        voice_id: Optional[str] = None,
        message: Optional[Message] = None,
        conversation_id: Optional[str] = None,
        voice: Optional[VoiceProfile] = None,
    ) -> SynthesisResult:
        """
        Speak ``text`` with the resolved voice.

        Audio is attached to ``message`` when given; otherwise, with a
        ``conversation_id``, a new assistant message carrying the audio is
        appended.

        A ``voice`` already passed through :meth:`resolve_voice` skips
        resolution.

        Raises:
            NoVoiceAvailable: the fallback chain found nothing
            AccessDenied: premium voice for a FREE-tier user
        """
        if not text or not text.strip():
            raise ValidationError("Text is required", field="text")

        if voice is None:
            voice = await self.resolve_voice(user_id, persona, voice_id)

        result = await self.synthesis.synthesize(text, voice.provider_voice_id)
        if not result.success:
            logger.error(
                "synthesis_failed",
                voice_id=voice.id,
                provider=result.provider,
                error=result.message,
            )
            return SynthesisResult(voice_id=voice.id, error=result.message)

        speech = result.value
        audio_url = await self.audio_store.save(speech.audio, speech.content_type)
        duration = estimate_duration(text)

        if message is not None:
            message = await self.history.attach_audio(message, audio_url, duration)
        elif conversation_id:
            message = await self.history.append(
                conversation_id,
                text,
                MessageRole.ASSISTANT.value,
                audio_url=audio_url,
                duration=duration,
            )

        return SynthesisResult(
            audio_url=audio_url,
            duration=duration,
            voice_id=voice.id,
            message=message,
        )

    # -------------------------------------------------------------------------
    # Full turn
    # -------------------------------------------------------------------------

    async def run_turn(
        self,
        conversation_id: str,
        user_id: str,
        text: Optional[str] = None,
        audio: Optional[bytes] = None,
        audio_url: Optional[str] = None,
        persona_id: Optional[str] = None,
        voice_id: Optional[str] = None,
        speak: bool = True,
    ) -> TurnResult:
        """One exchange, from user input to an assistant message with audio."""
        conversation = await self.conversations.get_owned(conversation_id, user_id)
        persona = await self.conversations.get_persona(persona_id or conversation.persona_id)

        with LogContext(conversation_id=conversation_id, user_id=user_id):
            turn = TurnResult()
            user_message: Optional[Message] = None

            if text is None or not text.strip():
                transcription = await self.transcribe(conversation_id, audio, audio_url)
                if not transcription.success:
                    turn.error = transcription.error
                    turn.failed_stage = "transcription"
                    return turn
                text = transcription.text
                user_message = transcription.message
            else:
                text = text.strip()
                user_message = await self.history.append(
                    conversation_id, text, MessageRole.USER.value
                )

            turn.transcript = text
            if user_message is not None:
                turn.messages.append(user_message)
            if not text:
                turn.error = "No speech detected"
                turn.failed_stage = "transcription"
                return turn

            # An unusable voice fails the synthesis stage only; the reply is
            # still generated and stored
            voice: Optional[VoiceProfile] = None
            voice_error: Optional[str] = None
            if speak:
                try:
                    voice = await self.resolve_voice(user_id, persona, voice_id)
                except (AccessDenied, NoVoiceAvailable) as e:
                    logger.warning("turn_voice_unavailable", error=e.message)
                    voice_error = e.message

            reply = await self.generate_reply(
                text,
                persona,
                conversation_id,
                exclude_message_id=user_message.id if user_message else None,
            )
            turn.reply = reply.text
            if reply.message is not None:
                turn.messages.append(reply.message)

            if not speak or not reply.text:
                return turn

            if voice_error is not None:
                turn.error = voice_error
                turn.failed_stage = "synthesis"
                return turn

            speech = await self.synthesize(
                reply.text,
                user_id,
                message=reply.message,
                voice=voice,
            )
            if not speech.success:
                turn.error = speech.error
                turn.failed_stage = "synthesis"
                return turn

            turn.audio_url = speech.audio_url
            turn.duration = speech.duration
            logger.info("turn_completed", persona_id=persona.id)
            return turn


__all__ = [
    "TurnPipeline",
    "TurnResult",
    "TranscriptionResult",
    "ReplyResult",
    "SynthesisResult",
    "estimate_duration",
]
