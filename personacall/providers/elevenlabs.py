"""
ElevenLabs Speech Provider

Text-to-speech and voice listing through the ElevenLabs API.
"""

import logging
from typing import List, Optional

import httpx

from ..config import ElevenLabsConfig
from .base import (
    FailureKind,
    ProviderResult,
    ProviderVoice,
    SpeechSynthesisProvider,
    SynthesizedSpeech,
    failure_from_exception,
    failure_from_response,
)


logger = logging.getLogger(__name__)


class ElevenLabsSpeechProvider(SpeechSynthesisProvider):
    """
    ElevenLabs Text-to-Speech provider.

    Returns MP3 audio; callers store the bytes and reference them by URL.
    """

    name = "elevenlabs"

    def __init__(self, config: Optional[ElevenLabsConfig] = None):
        self.config = config or ElevenLabsConfig.from_env()
        self._client: Optional[httpx.AsyncClient] = None
        if not self.config.api_key:
            logger.warning("ElevenLabs API key is not set. API calls will fail.")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers={
                    "xi-api-key": self.config.api_key,
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(self.config.timeout),
            )
        return self._client

    async def synthesize(
        self,
        text: str,
        voice_id: str,
    ) -> ProviderResult[SynthesizedSpeech]:
        """Synthesize ``text`` with the provider voice ``voice_id``."""
        if not text.strip():
            return ProviderResult.fail(
                self.name, FailureKind.INVALID_REQUEST, "Text is required"
            )

        body = {
            "text": text,
            "model_id": self.config.model,
            "voice_settings": {
                "stability": self.config.stability,
                "similarity_boost": self.config.similarity_boost,
                "style": self.config.style,
                "use_speaker_boost": self.config.use_speaker_boost,
            },
        }

        try:
            client = await self._get_client()
            response = await client.post(
                f"/text-to-speech/{voice_id}",
                json=body,
                headers={"Accept": "audio/mpeg"},
            )
        except httpx.HTTPError as e:
            logger.error(f"ElevenLabs synthesis failed: {e}")
            return failure_from_exception(self.name, e)

        if response.status_code != 200:
            logger.error(f"ElevenLabs API error {response.status_code}: {response.text}")
            return failure_from_response(self.name, response)

        return ProviderResult.ok(
            self.name,
            SynthesizedSpeech(
                audio=response.content,
                content_type=response.headers.get("content-type", "audio/mpeg"),
                voice_id=voice_id,
                characters=len(text),
            ),
        )

    async def list_voices(self) -> ProviderResult[List[ProviderVoice]]:
        """List the voices available to this account."""
        try:
            client = await self._get_client()
            response = await client.get("/voices")
        except httpx.HTTPError as e:
            logger.error(f"ElevenLabs voice listing failed: {e}")
            return failure_from_exception(self.name, e)

        if response.status_code != 200:
            return failure_from_response(self.name, response)

        voices = []
        for item in response.json().get("voices", []):
            labels = item.get("labels") or {}
            voices.append(
                ProviderVoice(
                    voice_id=item["voice_id"],
                    name=item.get("name") or item["voice_id"],
                    labels={k: str(v) for k, v in labels.items()},
                    preview_url=item.get("preview_url"),
                    category=item.get("category"),
                )
            )
        return ProviderResult.ok(self.name, voices)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = ["ElevenLabsSpeechProvider"]
