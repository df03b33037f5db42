"""
Database Models

SQLAlchemy ORM models for users, personas, voices, conversations,
messages and call logs.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin


class SubscriptionTier(str, PyEnum):
    """User subscription tiers."""

    FREE = "FREE"
    PREMIUM = "PREMIUM"
    BUSINESS = "BUSINESS"


class MessageRole(str, PyEnum):
    """Speaker of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


class CallDirection(str, PyEnum):
    """Direction of a telephony attempt."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"


# =============================================================================
# User Models
# =============================================================================


class User(Base, TimestampMixin):
    """User model."""

    __tablename__ = "users"

    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Usage accounting
    subscription_tier: Mapped[str] = mapped_column(
        String(20), default=SubscriptionTier.FREE.value, nullable=False
    )
    call_credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    preferences = relationship("UserPreferences", back_populates="user", uselist=False)
    conversations = relationship("Conversation", back_populates="user")
    call_logs = relationship("CallLog", back_populates="user")

    __table_args__ = (
        Index("ix_users_phone_number", "phone_number"),
    )

    @property
    def is_free_tier(self) -> bool:
        return self.subscription_tier == SubscriptionTier.FREE.value


class UserPreferences(Base, TimestampMixin):
    """Per-user defaults, created lazily."""

    __tablename__ = "user_preferences"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    default_persona_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("personas.id", ondelete="SET NULL"), nullable=True
    )
    preferred_voice_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("voice_profiles.id", ondelete="SET NULL"), nullable=True
    )
    max_call_duration: Mapped[int] = mapped_column(Integer, default=600)
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=False)

    user = relationship("User", back_populates="preferences")


# =============================================================================
# Persona & Voice Models
# =============================================================================


class VoiceProfile(Base, TimestampMixin):
    """A synthesis voice offered by a speech provider."""

    __tablename__ = "voice_profiles"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    provider: Mapped[str] = mapped_column(String(50), default="elevenlabs")
    provider_voice_id: Mapped[str] = mapped_column(String(100), nullable=False)

    gender: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    accent: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    preview_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False)
    is_system: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index("ix_voice_profiles_provider_voice_id", "provider", "provider_voice_id"),
        Index("ix_voice_profiles_is_default", "is_default"),
    )


class Persona(Base, TimestampMixin):
    """A reusable behavior profile applied to conversations."""

    __tablename__ = "personas"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    prompt_template: Mapped[str] = mapped_column(Text, nullable=False, default="")
    voice_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("voice_profiles.id", ondelete="SET NULL"), nullable=True
    )

    is_premium: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    memory_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    voice = relationship("VoiceProfile")

    __table_args__ = (
        Index("ix_personas_is_active", "is_active"),
    )


# =============================================================================
# Conversation Models
# =============================================================================


class Conversation(Base, TimestampMixin):
    """One chat or call thread between a user and a persona."""

    __tablename__ = "conversations"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    persona_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("personas.id"),
        nullable=False,
    )
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)

    user = relationship("User", back_populates="conversations")
    persona = relationship("Persona")
    messages = relationship(
        "Message", back_populates="conversation", order_by="Message.created_at"
    )

    __table_args__ = (
        Index("ix_conversations_user_id", "user_id"),
    )

    @property
    def is_active(self) -> bool:
        return self.ended_at is None and not self.is_archived


class Message(Base, TimestampMixin):
    """One turn in a conversation."""

    __tablename__ = "messages"

    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Synthesized audio
    audio_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    duration: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
    )


# =============================================================================
# Call Models
# =============================================================================


class CallLog(Base, TimestampMixin):
    """One telephony attempt."""

    __tablename__ = "call_logs"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    conversation_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("conversations.id", ondelete="SET NULL"),
        nullable=True,
    )

    provider_call_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    direction: Mapped[str] = mapped_column(
        String(20), default=CallDirection.OUTBOUND.value, nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), default="initiated", nullable=False)

    phone_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    from_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    to_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    start_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user = relationship("User", back_populates="call_logs")
    conversation = relationship("Conversation")

    __table_args__ = (
        Index("ix_call_logs_user_id", "user_id"),
    )


__all__ = [
    "SubscriptionTier",
    "MessageRole",
    "CallDirection",
    "User",
    "UserPreferences",
    "VoiceProfile",
    "Persona",
    "Conversation",
    "Message",
    "CallLog",
]
