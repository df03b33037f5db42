"""
Application Configuration

Settings for the API process and for each external collaborator,
loaded from environment variables.
"""

import os
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# =============================================================================
# Provider Configuration
# =============================================================================


@dataclass
class TwilioConfig:
    """Twilio-specific configuration."""

    account_sid: str = ""
    auth_token: str = ""
    phone_number: str = ""
    timeout: float = 15.0

    @classmethod
    def from_env(cls) -> "TwilioConfig":
        """Create config from environment variables."""
        return cls(
            account_sid=os.environ.get("TWILIO_ACCOUNT_SID", ""),
            auth_token=os.environ.get("TWILIO_AUTH_TOKEN", ""),
            phone_number=os.environ.get("TWILIO_PHONE_NUMBER", ""),
            timeout=float(os.environ.get("TWILIO_TIMEOUT", "15")),
        )


@dataclass
class WhisperConfig:
    """Whisper transcription configuration."""

    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    model: str = "whisper-1"
    timeout: float = 60.0

    @classmethod
    def from_env(cls) -> "WhisperConfig":
        return cls(
            api_key=os.environ.get("OPENAI_API_KEY", ""),
            base_url=os.environ.get("WHISPER_API_URL", "https://api.openai.com/v1"),
        )


@dataclass
class TogetherConfig:
    """TogetherAI completion configuration."""

    api_key: str = ""
    base_url: str = "https://api.together.xyz/v1"
    model: str = "mistralai/Mistral-7B-Instruct-v0.2"
    max_tokens: int = 1000
    temperature: float = 0.7
    timeout: float = 15.0

    @classmethod
    def from_env(cls) -> "TogetherConfig":
        return cls(
            api_key=os.environ.get("TOGETHER_API_KEY", ""),
            base_url=os.environ.get("TOGETHER_API_URL", "https://api.together.xyz/v1"),
            model=os.environ.get(
                "TOGETHER_DEFAULT_MODEL", "mistralai/Mistral-7B-Instruct-v0.2"
            ),
            max_tokens=int(os.environ.get("TOGETHER_MAX_TOKENS", "1000")),
            temperature=float(os.environ.get("TOGETHER_TEMPERATURE", "0.7")),
        )


@dataclass
class ElevenLabsConfig:
    """ElevenLabs synthesis configuration."""

    api_key: str = ""
    base_url: str = "https://api.elevenlabs.io/v1"
    model: str = "eleven_multilingual_v2"
    stability: float = 0.5
    similarity_boost: float = 0.75
    style: float = 0.5
    use_speaker_boost: bool = True
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "ElevenLabsConfig":
        return cls(
            api_key=os.environ.get("ELEVENLABS_API_KEY", ""),
            base_url=os.environ.get("ELEVENLABS_API_URL", "https://api.elevenlabs.io/v1"),
        )


# =============================================================================
# Application Settings
# =============================================================================


class Settings(BaseModel):
    """Application configuration."""

    # API settings
    title: str = "PersonaCall API"
    description: str = "Persona conversations over WhatsApp text and voice calls"
    version: str = "1.0.0"

    # Server settings
    debug: bool = False
    docs_enabled: bool = True
    environment: str = "development"

    # Database
    database_url: str = "sqlite+aiosqlite:///./personacall.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10
    create_tables: bool = True

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "pretty"

    # Callbacks
    webhook_base_url: str = "http://localhost:8000"
    validate_signatures: bool = True

    # Conversation
    trigger_phrase: str = "hi"
    history_window: int = 10
    greeting: str = "Hi! It's good to hear from you. What's on your mind?"

    # Synthesized audio
    audio_dir: str = "./media"
    media_path: str = "/media"

    # Providers
    twilio_phone_number: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Load configuration from environment variables."""
        environment = os.getenv("ENVIRONMENT", "development")
        return cls(
            debug=_env_bool("DEBUG", "false"),
            environment=environment,
            database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./personacall.db"),
            database_pool_size=int(os.getenv("DATABASE_POOL_SIZE", "5")),
            database_max_overflow=int(os.getenv("DATABASE_MAX_OVERFLOW", "10")),
            create_tables=_env_bool("CREATE_TABLES", "true"),
            cors_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv(
                "LOG_FORMAT", "json" if environment == "production" else "pretty"
            ),
            webhook_base_url=os.getenv("WEBHOOK_BASE_URL", "http://localhost:8000").rstrip("/"),
            validate_signatures=_env_bool("VALIDATE_TWILIO_SIGNATURE", "true"),
            trigger_phrase=os.getenv("TRIGGER_PHRASE", "hi"),
            history_window=int(os.getenv("HISTORY_WINDOW", "10")),
            audio_dir=os.getenv("AUDIO_DIR", "./media"),
            twilio_phone_number=os.getenv("TWILIO_PHONE_NUMBER"),
        )


__all__ = [
    "Settings",
    "TwilioConfig",
    "WhisperConfig",
    "TogetherConfig",
    "ElevenLabsConfig",
]
