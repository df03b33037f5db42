"""
Providers Module

Adapters for the external telephony, transcription, completion and
speech-synthesis services.
"""

from .base import (
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
    parse_error_detail,
)
from .elevenlabs import ElevenLabsSpeechProvider
from .storage import AudioStore
from .together import DEFAULT_STOP, TogetherCompletionProvider
from .twilio_provider import (
    TwilioTelephonyProvider,
    normalize_phone_number,
    whatsapp_address,
)
from .whisper import WhisperTranscriptionProvider

__all__ = [
    # Boundary types
    "FailureKind",
    "ProviderResult",
    "parse_error_detail",
    "PlacedCall",
    "Transcription",
    "Completion",
    "SynthesizedSpeech",
    "ProviderVoice",
    # Interfaces
    "TelephonyProvider",
    "TranscriptionProvider",
    "CompletionProvider",
    "SpeechSynthesisProvider",
    # Adapters
    "TwilioTelephonyProvider",
    "WhisperTranscriptionProvider",
    "TogetherCompletionProvider",
    "ElevenLabsSpeechProvider",
    "AudioStore",
    "DEFAULT_STOP",
    "normalize_phone_number",
    "whatsapp_address",
]
