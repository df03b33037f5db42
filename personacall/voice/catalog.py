"""
Voice Catalog

Keeps the stored voice profiles in step with the speech provider's list.
"""

from typing import List

import structlog

from ..database.models import VoiceProfile
from ..database.repositories import VoiceProfileRepository
from ..providers.base import SpeechSynthesisProvider


logger = structlog.get_logger(__name__)


class VoiceCatalog:
    """Voice profile listing and provider sync."""

    def __init__(
        self,
        voices: VoiceProfileRepository,
        synthesis: SpeechSynthesisProvider,
    ):
        self.voices = voices
        self.synthesis = synthesis

    async def list_voices(self, include_premium: bool = True) -> List[VoiceProfile]:
        return await self.voices.list_all(include_premium=include_premium)

    async def sync_from_provider(self) -> List[VoiceProfile]:
        """
        Upsert every provider voice as a system voice profile.

        Existing rows keep their default and premium flags.
        """
        result = (await self.synthesis.list_voices()).unwrap()

        synced: List[VoiceProfile] = []
        for item in result:
            profile = await self.voices.get_by_provider_voice_id(
                self.synthesis.name, item.voice_id
            )
            fields = {
                "name": item.name,
                "gender": item.labels.get("gender"),
                "accent": item.labels.get("accent"),
                "preview_url": item.preview_url,
                "is_system": True,
            }
            if profile is None:
                profile = await self.voices.create(
                    provider=self.synthesis.name,
                    provider_voice_id=item.voice_id,
                    is_default=False,
                    is_premium=False,
                    **fields,
                )
            else:
                profile = await self.voices.update(profile.id, **fields)
            synced.append(profile)

        logger.info(
            "voice_catalog_synced",
            provider=self.synthesis.name,
            count=len(synced),
        )
        return synced


__all__ = ["VoiceCatalog"]
