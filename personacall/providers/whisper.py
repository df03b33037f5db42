"""
Whisper Transcription Provider

Speech-to-text through the OpenAI Whisper transcription endpoint.
"""

import logging
from typing import Optional

import httpx

from ..config import WhisperConfig
from .base import (
    FailureKind,
    ProviderResult,
    Transcription,
    TranscriptionProvider,
    failure_from_exception,
    failure_from_response,
)


logger = logging.getLogger(__name__)


class WhisperTranscriptionProvider(TranscriptionProvider):
    """OpenAI Whisper speech-to-text provider."""

    name = "whisper"

    def __init__(
        self,
        config: Optional[WhisperConfig] = None,
        language: str = "en",
    ):
        self.config = config or WhisperConfig.from_env()
        self.language = language
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers={"Authorization": f"Bearer {self.config.api_key}"},
                timeout=httpx.Timeout(self.config.timeout),
            )
        return self._client

    async def transcribe(
        self,
        audio: bytes,
        filename: str = "audio.wav",
        prompt: Optional[str] = None,
    ) -> ProviderResult[Transcription]:
        """Transcribe a WAV audio buffer."""
        if not audio:
            return ProviderResult.fail(
                self.name, FailureKind.INVALID_REQUEST, "No audio data provided"
            )

        data = {"model": self.config.model, "language": self.language}
        if prompt:
            data["prompt"] = prompt

        try:
            client = await self._get_client()
            response = await client.post(
                "/audio/transcriptions",
                files={"file": (filename, audio, "audio/wav")},
                data=data,
            )
        except httpx.HTTPError as e:
            logger.error(f"Whisper transcription failed: {e}")
            return failure_from_exception(self.name, e)

        if response.status_code != 200:
            logger.error(f"Whisper API error {response.status_code}: {response.text}")
            return failure_from_response(self.name, response)

        payload = response.json()
        return ProviderResult.ok(
            self.name,
            Transcription(
                text=(payload.get("text") or "").strip(),
                language=payload.get("language"),
                duration=payload.get("duration"),
            ),
        )

    async def transcribe_url(self, url: str) -> ProviderResult[Transcription]:
        """Download audio from a URL and transcribe it."""
        try:
            client = await self._get_client()
            # Absolute URL, so the API base and auth header are not applied
            async with httpx.AsyncClient(timeout=client.timeout) as downloader:
                response = await downloader.get(url)
        except httpx.HTTPError as e:
            logger.error(f"Failed to download audio from {url}: {e}")
            return failure_from_exception(self.name, e)

        if response.status_code != 200:
            return failure_from_response(self.name, response)

        return await self.transcribe(response.content)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = ["WhisperTranscriptionProvider"]
