"""
Voice Module

Voice resolution and the stored voice catalog.
"""

from .catalog import VoiceCatalog
from .resolver import (
    DefaultVoiceStrategy,
    ExplicitVoiceStrategy,
    PersonaVoiceStrategy,
    PreferredVoiceStrategy,
    VoiceRequest,
    VoiceResolution,
    VoiceResolver,
    VoiceStrategy,
)

__all__ = [
    "VoiceCatalog",
    "VoiceResolver",
    "VoiceRequest",
    "VoiceResolution",
    "VoiceStrategy",
    "ExplicitVoiceStrategy",
    "PersonaVoiceStrategy",
    "PreferredVoiceStrategy",
    "DefaultVoiceStrategy",
]
