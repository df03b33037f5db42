"""
Voice Resolver

Picks the synthesis voice for an utterance by walking an ordered list of
resolution strategies; the first one that finds a voice wins.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

import structlog

from ..database.models import Persona, VoiceProfile
from ..database.repositories import UserPreferencesRepository, VoiceProfileRepository
from ..errors import NoVoiceAvailable


logger = structlog.get_logger(__name__)


@dataclass
class VoiceRequest:
    """Inputs available to the resolution strategies."""

    user_id: str
    explicit_voice_id: Optional[str] = None
    persona: Optional[Persona] = None


@dataclass
class VoiceResolution:
    voice: VoiceProfile
    source: str


class VoiceStrategy(ABC):
    """One step of the fallback chain. Returns a voice, or None to continue."""

    source: str = ""

    def __init__(self, voices: VoiceProfileRepository):
        self.voices = voices

    @abstractmethod
    async def find(self, request: VoiceRequest) -> Optional[VoiceProfile]:
        ...

    async def _lookup(self, voice_id: Optional[str]) -> Optional[VoiceProfile]:
        if not voice_id:
            return None
        return await self.voices.get_by_id(voice_id)


class ExplicitVoiceStrategy(VoiceStrategy):
    """The caller-supplied voice id, if it exists."""

    source = "explicit"

    async def find(self, request: VoiceRequest) -> Optional[VoiceProfile]:
        return await self._lookup(request.explicit_voice_id)


class PersonaVoiceStrategy(VoiceStrategy):
    """The persona's linked voice."""

    source = "persona"

    async def find(self, request: VoiceRequest) -> Optional[VoiceProfile]:
        if request.persona is None:
            return None
        return await self._lookup(request.persona.voice_id)


class PreferredVoiceStrategy(VoiceStrategy):
    """The user's preferred voice."""

    source = "preference"

    def __init__(
        self,
        voices: VoiceProfileRepository,
        preferences: UserPreferencesRepository,
    ):
        super().__init__(voices)
        self.preferences = preferences

    async def find(self, request: VoiceRequest) -> Optional[VoiceProfile]:
        prefs = await self.preferences.get_by_user(request.user_id)
        if prefs is None:
            return None
        return await self._lookup(prefs.preferred_voice_id)


class DefaultVoiceStrategy(VoiceStrategy):
    """The store's default voice."""

    source = "default"

    async def find(self, request: VoiceRequest) -> Optional[VoiceProfile]:
        return await self.voices.get_default()


class VoiceResolver:
    """
    Resolves a voice through a fixed-priority strategy chain.

    The resolver is tier-agnostic; premium gating happens at the caller.
    """

    def __init__(self, strategies: Sequence[VoiceStrategy]):
        self.strategies: List[VoiceStrategy] = list(strategies)

    @classmethod
    def default_chain(
        cls,
        voices: VoiceProfileRepository,
        preferences: UserPreferencesRepository,
    ) -> "VoiceResolver":
        """explicit, then persona, then preference, then store default."""
        return cls([
            ExplicitVoiceStrategy(voices),
            PersonaVoiceStrategy(voices),
            PreferredVoiceStrategy(voices, preferences),
            DefaultVoiceStrategy(voices),
        ])

    async def resolve_with_source(self, request: VoiceRequest) -> VoiceResolution:
        for strategy in self.strategies:
            voice = await strategy.find(request)
            if voice is not None:
                logger.debug(
                    "voice_resolved",
                    voice_id=voice.id,
                    source=strategy.source,
                    user_id=request.user_id,
                )
                return VoiceResolution(voice=voice, source=strategy.source)

        logger.warning("no_voice_available", user_id=request.user_id)
        raise NoVoiceAvailable()

    async def resolve(
        self,
        explicit_voice_id: Optional[str],
        persona: Optional[Persona],
        user_id: str,
    ) -> VoiceProfile:
        resolution = await self.resolve_with_source(
            VoiceRequest(
                user_id=user_id,
                explicit_voice_id=explicit_voice_id,
                persona=persona,
            )
        )
        return resolution.voice


__all__ = [
    "VoiceRequest",
    "VoiceResolution",
    "VoiceStrategy",
    "ExplicitVoiceStrategy",
    "PersonaVoiceStrategy",
    "PreferredVoiceStrategy",
    "DefaultVoiceStrategy",
    "VoiceResolver",
]
