"""
Service Registrations

Composition root: provider clients and the database manager are
singletons built once per process; repositories and orchestration
components are scoped to a request and share its database session.
"""

from ..billing.guard import CreditGuard
from ..calls.manager import CallLifecycleManager
from ..config import (
    ElevenLabsConfig,
    Settings,
    TogetherConfig,
    TwilioConfig,
    WhisperConfig,
)
from ..conversation.history import ConversationHistoryStore
from ..conversation.service import ConversationService
from ..database.base import DatabaseManager
from ..database.repositories import (
    CallLogRepository,
    ConversationRepository,
    MessageRepository,
    PersonaRepository,
    UserPreferencesRepository,
    UserRepository,
    VoiceProfileRepository,
)
from ..pipeline.turn import TurnPipeline
from ..providers.base import (
    CompletionProvider,
    SpeechSynthesisProvider,
    TelephonyProvider,
    TranscriptionProvider,
)
from ..providers.elevenlabs import ElevenLabsSpeechProvider
from ..providers.storage import AudioStore
from ..providers.together import TogetherCompletionProvider
from ..providers.twilio_provider import TwilioTelephonyProvider
from ..providers.whisper import WhisperTranscriptionProvider
from ..voice.catalog import VoiceCatalog
from ..voice.resolver import VoiceResolver
from .container import Container


# =============================================================================
# Factories
# =============================================================================


def _database(settings: Settings) -> DatabaseManager:
    return DatabaseManager(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        echo=settings.debug,
    )


def _telephony(settings: Settings) -> TelephonyProvider:
    config = TwilioConfig.from_env()
    if not config.phone_number and settings.twilio_phone_number:
        config.phone_number = settings.twilio_phone_number
    return TwilioTelephonyProvider(config)


def _transcription() -> TranscriptionProvider:
    return WhisperTranscriptionProvider(WhisperConfig.from_env())


def _completion() -> CompletionProvider:
    return TogetherCompletionProvider(TogetherConfig.from_env())


def _synthesis() -> SpeechSynthesisProvider:
    return ElevenLabsSpeechProvider(ElevenLabsConfig.from_env())


def _audio_store(settings: Settings) -> AudioStore:
    return AudioStore(settings.audio_dir, settings.webhook_base_url, settings.media_path)


def _history(
    settings: Settings,
    messages: MessageRepository,
    conversations: ConversationRepository,
) -> ConversationHistoryStore:
    return ConversationHistoryStore(messages, conversations, window=settings.history_window)


def _voice_resolver(
    voices: VoiceProfileRepository,
    preferences: UserPreferencesRepository,
) -> VoiceResolver:
    return VoiceResolver.default_chain(voices, preferences)


# =============================================================================
# Registration
# =============================================================================


def configure_services(container: Container, settings: Settings) -> Container:
    """Register every service the API needs.

    Providers already registered (e.g. test fakes) are left in place.

    Args:
        container: Container to configure
        settings: Application settings

    Returns:
        Configured container
    """
    container.register_singleton(Settings, instance=settings)

    if not container.is_registered(DatabaseManager):
        container.register_singleton(DatabaseManager, factory=_database)
    if not container.is_registered(TelephonyProvider):
        container.register_singleton(TelephonyProvider, factory=_telephony)
    if not container.is_registered(TranscriptionProvider):
        container.register_singleton(TranscriptionProvider, factory=_transcription)
    if not container.is_registered(CompletionProvider):
        container.register_singleton(CompletionProvider, factory=_completion)
    if not container.is_registered(SpeechSynthesisProvider):
        container.register_singleton(SpeechSynthesisProvider, factory=_synthesis)
    if not container.is_registered(AudioStore):
        container.register_singleton(AudioStore, factory=_audio_store)

    # Repositories share the request's AsyncSession, seeded into each scope
    for repository in (
        UserRepository,
        UserPreferencesRepository,
        PersonaRepository,
        VoiceProfileRepository,
        ConversationRepository,
        MessageRepository,
        CallLogRepository,
    ):
        container.register_scoped(repository)

    container.register_scoped(ConversationHistoryStore, factory=_history)
    container.register_scoped(VoiceResolver, factory=_voice_resolver)
    container.register_scoped(CreditGuard)
    container.register_scoped(ConversationService)
    container.register_scoped(VoiceCatalog)
    container.register_scoped(CallLifecycleManager)
    container.register_scoped(TurnPipeline)

    return container


def build_container(settings: Settings) -> Container:
    return configure_services(Container(), settings)


__all__ = ["configure_services", "build_container"]
