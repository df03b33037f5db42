"""
API Routes Module
"""

from .ai import router as ai_router
from .voice import router as voice_router
from .whatsapp import router as whatsapp_router

__all__ = [
    "ai_router",
    "voice_router",
    "whatsapp_router",
]
