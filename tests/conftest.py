"""Shared pytest fixtures for testing."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from personacall.api.app import create_app
from personacall.config import Settings
from personacall.database import DatabaseManager
from personacall.database.models import (
    Conversation,
    Persona,
    SubscriptionTier,
    User,
    VoiceProfile,
)
from personacall.di.container import Container, Scope
from personacall.di.services import configure_services
from personacall.providers.base import (
    Completion,
    CompletionProvider,
    FailureKind,
    PlacedCall,
    ProviderResult,
    ProviderVoice,
    SpeechSynthesisProvider,
    SynthesizedSpeech,
    TelephonyProvider,
    Transcription,
    TranscriptionProvider,
)
from personacall.providers.storage import AudioStore


VALID_SIGNATURE = "valid-signature"
FAKE_AUDIO = b"ID3\x03\x00fake-mp3-frames"


# =============================================================================
# Fake Collaborators
# =============================================================================


class FakeTelephony(TelephonyProvider):
    """Records placed and ended calls; accepts one known signature."""

    name = "fake-telephony"

    def __init__(self):
        self.placed: List[Dict[str, str]] = []
        self.ended: List[str] = []
        self.fail_with: Optional[ProviderResult] = None
        self.from_number = "+15550000000"

    async def place_call(self, to_number, callback_url, status_callback_url):
        if self.fail_with is not None:
            return self.fail_with
        sid = f"CA{len(self.placed) + 1:032d}"
        self.placed.append({
            "sid": sid,
            "to_number": to_number,
            "callback_url": callback_url,
            "status_callback_url": status_callback_url,
        })
        return ProviderResult.ok(
            self.name,
            PlacedCall(
                sid=sid,
                status="queued",
                to_number=to_number,
                from_number=self.from_number,
            ),
        )

    async def end_call(self, provider_call_id):
        self.ended.append(provider_call_id)
        return ProviderResult.ok(self.name, "completed")

    def validate_signature(self, url, params, signature):
        return signature == VALID_SIGNATURE


class FakeTranscription(TranscriptionProvider):
    name = "fake-transcription"

    def __init__(self):
        self.text = "how are you?"
        self.fail = False
        self.received: List[Any] = []

    def _result(self) -> ProviderResult:
        if self.fail:
            return ProviderResult.fail(
                self.name, FailureKind.HTTP_ERROR, "Audio file could not be decoded"
            )
        return ProviderResult.ok(self.name, Transcription(text=self.text, language="en"))

    async def transcribe(self, audio, filename="audio.wav"):
        self.received.append(audio)
        return self._result()

    async def transcribe_url(self, url):
        self.received.append(url)
        return self._result()


class FakeCompletion(CompletionProvider):
    name = "fake-completion"

    def __init__(self):
        self.reply = "Assistant: Doing great, thanks for asking!\nUser: cool"
        self.fail = False
        self.prompts: List[str] = []

    async def complete(self, prompt, stop=None):
        self.prompts.append(prompt)
        if self.fail:
            return ProviderResult.fail(
                self.name,
                FailureKind.RATE_LIMITED,
                "Rate limit exceeded",
                status_code=429,
            )
        return ProviderResult.ok(self.name, Completion(text=self.reply))


class FakeSynthesis(SpeechSynthesisProvider):
    name = "elevenlabs"

    def __init__(self):
        self.fail = False
        self.requests: List[Dict[str, str]] = []
        self.voices: List[ProviderVoice] = []

    async def synthesize(self, text, voice_id):
        self.requests.append({"text": text, "voice_id": voice_id})
        if self.fail:
            return ProviderResult.fail(
                self.name, FailureKind.HTTP_ERROR, "Voice engine unavailable"
            )
        return ProviderResult.ok(
            self.name,
            SynthesizedSpeech(audio=FAKE_AUDIO, voice_id=voice_id, characters=len(text)),
        )

    async def list_voices(self):
        return ProviderResult.ok(self.name, list(self.voices))


# =============================================================================
# Settings & Database Fixtures
# =============================================================================


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        webhook_base_url="http://test",
        validate_signatures=True,
        audio_dir=str(tmp_path / "media"),
        create_tables=False,
        docs_enabled=False,
        log_level="WARNING",
    )


@pytest_asyncio.fixture
async def db(settings: Settings) -> AsyncGenerator[DatabaseManager, None]:
    """Fresh database per test, with tables created."""
    manager = DatabaseManager(settings.database_url)
    await manager.create_all()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def session(db: DatabaseManager) -> AsyncGenerator[AsyncSession, None]:
    async with db.session() as s:
        yield s


# =============================================================================
# Seed Data
# =============================================================================


@dataclass
class SeedData:
    free_user_id: str
    premium_user_id: str
    broke_user_id: str
    persona_id: str
    premium_persona_id: str
    inactive_persona_id: str
    default_voice_id: str
    premium_voice_id: str
    conversation_id: str

    free_phone: str = "+15551234567"
    premium_phone: str = "+15559876543"
    broke_phone: str = "+15550001111"


@pytest_asyncio.fixture
async def seed(db: DatabaseManager) -> SeedData:
    """Users, personas, voices and one open conversation, committed."""
    base_time = datetime.utcnow() - timedelta(hours=1)

    async with db.session() as s:
        default_voice = VoiceProfile(
            name="Rachel",
            provider_voice_id="voice-default",
            is_default=True,
        )
        premium_voice = VoiceProfile(
            name="Domi",
            provider_voice_id="voice-premium",
            is_premium=True,
        )
        s.add_all([default_voice, premium_voice])
        await s.flush()

        persona = Persona(
            name="Ava",
            description="A warm and curious friend",
            image_url="https://cdn.example.com/ava.png",
            prompt_template="You are Ava, a warm and curious friend.",
            voice_id=default_voice.id,
            is_default=True,
            created_at=base_time,
        )
        premium_persona = Persona(
            name="Nova",
            description="Executive coach",
            prompt_template="You are Nova, a sharp executive coach.",
            is_premium=True,
            created_at=base_time + timedelta(minutes=1),
        )
        inactive_persona = Persona(
            name="Retired",
            prompt_template="You are retired.",
            is_active=False,
            created_at=base_time + timedelta(minutes=2),
        )
        free_user = User(
            email="free@example.com",
            name="Free User",
            phone_number="+15551234567",
            subscription_tier=SubscriptionTier.FREE.value,
            call_credits=1,
        )
        premium_user = User(
            email="premium@example.com",
            name="Premium User",
            phone_number="+15559876543",
            subscription_tier=SubscriptionTier.PREMIUM.value,
            call_credits=5,
        )
        broke_user = User(
            email="broke@example.com",
            name="Broke User",
            phone_number="+15550001111",
            subscription_tier=SubscriptionTier.FREE.value,
            call_credits=0,
        )
        s.add_all([persona, premium_persona, inactive_persona, free_user, premium_user, broke_user])
        await s.flush()

        conversation = Conversation(
            user_id=free_user.id,
            persona_id=persona.id,
            title="Evening chat",
        )
        s.add(conversation)
        await s.flush()

        return SeedData(
            free_user_id=free_user.id,
            premium_user_id=premium_user.id,
            broke_user_id=broke_user.id,
            persona_id=persona.id,
            premium_persona_id=premium_persona.id,
            inactive_persona_id=inactive_persona.id,
            default_voice_id=default_voice.id,
            premium_voice_id=premium_voice.id,
            conversation_id=conversation.id,
        )


# =============================================================================
# Collaborator & Container Fixtures
# =============================================================================


@pytest.fixture
def telephony() -> FakeTelephony:
    return FakeTelephony()


@pytest.fixture
def transcription() -> FakeTranscription:
    return FakeTranscription()


@pytest.fixture
def completion() -> FakeCompletion:
    return FakeCompletion()


@pytest.fixture
def synthesis() -> FakeSynthesis:
    return FakeSynthesis()


@pytest.fixture
def audio_store(settings: Settings) -> AudioStore:
    return AudioStore(settings.audio_dir, settings.webhook_base_url, settings.media_path)


@pytest.fixture
def container(
    settings: Settings,
    db: DatabaseManager,
    telephony: FakeTelephony,
    transcription: FakeTranscription,
    completion: FakeCompletion,
    synthesis: FakeSynthesis,
    audio_store: AudioStore,
) -> Container:
    """Container wired with fakes in place of the real providers."""
    container = Container()
    container.register_singleton(DatabaseManager, instance=db)
    container.register_singleton(TelephonyProvider, instance=telephony)
    container.register_singleton(TranscriptionProvider, instance=transcription)
    container.register_singleton(CompletionProvider, instance=completion)
    container.register_singleton(SpeechSynthesisProvider, instance=synthesis)
    container.register_singleton(AudioStore, instance=audio_store)
    return configure_services(container, settings)


@pytest_asyncio.fixture
async def scope(container: Container, session: AsyncSession) -> AsyncGenerator[Scope, None]:
    """Request-like scope sharing the test session."""
    async with container.create_scope({AsyncSession: session}) as s:
        yield s


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def app(settings: Settings, container: Container) -> FastAPI:
    """Create test FastAPI application."""
    return create_app(settings, container)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def signed_headers() -> Dict[str, str]:
    return {"X-Twilio-Signature": VALID_SIGNATURE}
