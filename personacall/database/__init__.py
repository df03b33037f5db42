"""
Database Module

Persistence layer: models, repositories and session management.
"""

from .base import Base, DatabaseManager, TimestampMixin
from .models import (
    CallDirection,
    CallLog,
    Conversation,
    Message,
    MessageRole,
    Persona,
    SubscriptionTier,
    User,
    UserPreferences,
    VoiceProfile,
)
from .repositories import (
    BaseRepository,
    CallLogRepository,
    ConversationRepository,
    MessageRepository,
    PersonaRepository,
    UserPreferencesRepository,
    UserRepository,
    VoiceProfileRepository,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "DatabaseManager",
    # Models
    "SubscriptionTier",
    "MessageRole",
    "CallDirection",
    "User",
    "UserPreferences",
    "Persona",
    "VoiceProfile",
    "Conversation",
    "Message",
    "CallLog",
    # Repositories
    "BaseRepository",
    "UserRepository",
    "UserPreferencesRepository",
    "PersonaRepository",
    "VoiceProfileRepository",
    "ConversationRepository",
    "MessageRepository",
    "CallLogRepository",
]
