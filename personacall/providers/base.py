"""
Provider Boundary

Narrow contracts for the external collaborators (telephony,
transcription, completion, speech synthesis) and the structured result
type every adapter returns instead of raising transport errors.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

import httpx

from ..errors import ProviderError


T = TypeVar("T")


class FailureKind(str, Enum):
    """Why a provider invocation failed."""

    HTTP_ERROR = "http_error"
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    AUTH = "auth"
    RATE_LIMITED = "rate_limited"
    INVALID_REQUEST = "invalid_request"
    UNKNOWN = "unknown"


@dataclass
class ProviderResult(Generic[T]):
    """Outcome of one provider call: a value, or a classified failure."""

    provider: str
    value: Optional[T] = None
    kind: Optional[FailureKind] = None
    message: Optional[str] = None
    raw_detail: Any = None
    status_code: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.kind is None

    @classmethod
    def ok(cls, provider: str, value: T) -> "ProviderResult[T]":
        return cls(provider=provider, value=value)

    @classmethod
    def fail(
        cls,
        provider: str,
        kind: FailureKind,
        message: str,
        raw_detail: Any = None,
        status_code: Optional[int] = None,
    ) -> "ProviderResult[T]":
        return cls(
            provider=provider,
            kind=kind,
            message=message,
            raw_detail=raw_detail,
            status_code=status_code,
        )

    def unwrap(self) -> T:
        """Return the value or raise ProviderError for a failure."""
        if not self.success:
            raise self.to_error()
        return self.value

    def to_error(self) -> ProviderError:
        return ProviderError(
            provider=self.provider,
            message=self.message or f"{self.provider} request failed",
            kind=self.kind.value if self.kind else None,
            raw_detail=self.raw_detail,
        )


def parse_error_detail(body: Any, fallback: str = "Unknown provider error") -> str:
    """
    Extract a human-readable message from a provider error body.

    Tries JSON first, then ``detail.message``, ``error.message`` and a
    top-level ``message``; falls back to the raw text. Never raises.
    """
    if body is None:
        return fallback

    data = body
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")
        data = body
    if isinstance(body, str):
        try:
            data = json.loads(body)
        except ValueError:
            return body.strip() or fallback

    if isinstance(data, dict):
        for key in ("detail", "error"):
            nested = data.get(key)
            if isinstance(nested, dict) and isinstance(nested.get("message"), str):
                return nested["message"]
            if isinstance(nested, str) and nested:
                return nested
        if isinstance(data.get("message"), str) and data["message"]:
            return data["message"]
        return json.dumps(data)

    if isinstance(data, str):
        return data.strip() or fallback
    return str(data) or fallback


def classify_status(status_code: int) -> FailureKind:
    """Map an HTTP status code onto a failure kind."""
    if status_code in (401, 403):
        return FailureKind.AUTH
    if status_code == 429:
        return FailureKind.RATE_LIMITED
    if status_code in (400, 404, 422):
        return FailureKind.INVALID_REQUEST
    return FailureKind.HTTP_ERROR


def failure_from_response(provider: str, response: httpx.Response) -> ProviderResult:
    """Build a failed result from a non-2xx HTTP response."""
    raw = response.text
    return ProviderResult.fail(
        provider,
        classify_status(response.status_code),
        parse_error_detail(raw, fallback=f"HTTP {response.status_code}"),
        raw_detail=raw,
        status_code=response.status_code,
    )


def failure_from_exception(provider: str, exc: Exception) -> ProviderResult:
    """Build a failed result from a transport exception."""
    if isinstance(exc, httpx.TimeoutException):
        kind = FailureKind.TIMEOUT
        message = f"{provider} request timed out"
    elif isinstance(exc, (httpx.ConnectError, httpx.NetworkError)):
        kind = FailureKind.CONNECTION
        message = f"Failed to connect to {provider}"
    elif isinstance(exc, httpx.HTTPStatusError):
        return failure_from_response(provider, exc.response)
    else:
        kind = FailureKind.UNKNOWN
        message = str(exc) or exc.__class__.__name__
    return ProviderResult.fail(provider, kind, message, raw_detail=str(exc))


# =============================================================================
# Value Types
# =============================================================================


@dataclass
class PlacedCall:
    """A call accepted by the telephony provider."""

    sid: str
    status: str
    to_number: str
    from_number: str


@dataclass
class Transcription:
    text: str
    language: Optional[str] = None
    duration: Optional[float] = None


@dataclass
class Completion:
    text: str
    model: Optional[str] = None
    finish_reason: Optional[str] = None


@dataclass
class SynthesizedSpeech:
    audio: bytes
    content_type: str = "audio/mpeg"
    voice_id: Optional[str] = None
    characters: int = 0


@dataclass
class ProviderVoice:
    """A voice as listed by the speech provider."""

    voice_id: str
    name: str
    labels: Dict[str, str] = field(default_factory=dict)
    preview_url: Optional[str] = None
    category: Optional[str] = None


# =============================================================================
# Provider Interfaces
# =============================================================================


class TelephonyProvider(ABC):
    """Places, ends and authenticates telephony calls."""

    name: str = "telephony"

    @abstractmethod
    async def place_call(
        self,
        to_number: str,
        callback_url: str,
        status_callback_url: str,
    ) -> ProviderResult[PlacedCall]:
        """Request an outbound call."""

    @abstractmethod
    async def end_call(self, provider_call_id: str) -> ProviderResult[str]:
        """Request provider-side termination of a call."""

    @abstractmethod
    def validate_signature(
        self,
        url: str,
        params: Dict[str, Any],
        signature: Optional[str],
    ) -> bool:
        """Verify a callback's authenticity."""


class TranscriptionProvider(ABC):
    """Audio to text."""

    name: str = "transcription"

    @abstractmethod
    async def transcribe(
        self,
        audio: bytes,
        filename: str = "audio.wav",
    ) -> ProviderResult[Transcription]:
        ...

    @abstractmethod
    async def transcribe_url(self, url: str) -> ProviderResult[Transcription]:
        ...


class CompletionProvider(ABC):
    """Prompt to text."""

    name: str = "completion"

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        stop: Optional[List[str]] = None,
    ) -> ProviderResult[Completion]:
        ...


class SpeechSynthesisProvider(ABC):
    """Text to audio."""

    name: str = "synthesis"

    @abstractmethod
    async def synthesize(
        self,
        text: str,
        voice_id: str,
    ) -> ProviderResult[SynthesizedSpeech]:
        ...

    async def list_voices(self) -> ProviderResult[List[ProviderVoice]]:
        return ProviderResult.ok(self.name, [])


__all__ = [
    "FailureKind",
    "ProviderResult",
    "parse_error_detail",
    "classify_status",
    "failure_from_response",
    "failure_from_exception",
    "PlacedCall",
    "Transcription",
    "Completion",
    "SynthesizedSpeech",
    "ProviderVoice",
    "TelephonyProvider",
    "TranscriptionProvider",
    "CompletionProvider",
    "SpeechSynthesisProvider",
]
