"""
Database Repositories

Repository pattern implementation for data access.
"""

from datetime import datetime, timedelta
from typing import Generic, List, Optional, Type, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .base import Base
from .models import (
    CallLog,
    Conversation,
    Message,
    Persona,
    User,
    UserPreferences,
    VoiceProfile,
)


# =============================================================================
# Generic Type Variable
# =============================================================================


ModelType = TypeVar("ModelType", bound=Base)


# =============================================================================
# Base Repository
# =============================================================================


class BaseRepository(Generic[ModelType]):
    """Base repository with common CRUD operations."""

    model: Type[ModelType]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        """Get entity by ID."""
        result = await self.session.execute(
            select(self.model).where(self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def create(self, **kwargs) -> ModelType:
        """Create a new entity."""
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def update(self, id: str, **kwargs) -> Optional[ModelType]:
        """Update an entity."""
        instance = await self.get_by_id(id)
        if not instance:
            return None

        for key, value in kwargs.items():
            if hasattr(instance, key):
                setattr(instance, key, value)

        await self.session.flush()
        await self.session.refresh(instance)
        return instance


# =============================================================================
# User Repositories
# =============================================================================


class UserRepository(BaseRepository[User]):
    """User repository."""

    model = User

    async def get_by_phone(self, phone_number: str) -> Optional[User]:
        """Get user by phone number."""
        result = await self.session.execute(
            select(User).where(User.phone_number == phone_number).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_credits(self, id: str) -> Optional[int]:
        """Read the current credit balance straight from the store."""
        result = await self.session.execute(
            select(User.call_credits).where(User.id == id)
        )
        return result.scalar_one_or_none()

    async def consume_credit(self, id: str) -> bool:
        """
        Atomically decrement the user's call credits by one.

        The decrement is a single conditional UPDATE guarded by
        ``call_credits > 0``, so concurrent callers can never drive the
        balance negative. Returns False when no credit was available.
        """
        result = await self.session.execute(
            update(User)
            .where(User.id == id, User.call_credits > 0)
            .values(call_credits=User.call_credits - 1)
            .execution_options(synchronize_session=False)
        )
        consumed = result.rowcount == 1
        if consumed:
            await self.session.flush()
            # Keep any already-loaded instance in step with the store
            user = await self.session.get(User, id)
            if user is not None:
                await self.session.refresh(user, attribute_names=["call_credits"])
        return consumed


class UserPreferencesRepository(BaseRepository[UserPreferences]):
    """User preferences repository."""

    model = UserPreferences

    async def get_by_user(self, user_id: str) -> Optional[UserPreferences]:
        result = await self.session.execute(
            select(UserPreferences).where(UserPreferences.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id: str) -> UserPreferences:
        """Get the user's preferences, creating defaults on first access."""
        preferences = await self.get_by_user(user_id)
        if preferences is None:
            preferences = await self.create(user_id=user_id)
        return preferences


# =============================================================================
# Persona & Voice Repositories
# =============================================================================


class PersonaRepository(BaseRepository[Persona]):
    """Persona repository."""

    model = Persona

    async def list_active(self) -> List[Persona]:
        """Active personas, oldest first."""
        result = await self.session.execute(
            select(Persona)
            .where(Persona.is_active.is_(True))
            .order_by(Persona.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_default(self) -> Optional[Persona]:
        """The active persona flagged as the system default."""
        result = await self.session.execute(
            select(Persona)
            .where(Persona.is_default.is_(True), Persona.is_active.is_(True))
            .order_by(Persona.created_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()


class VoiceProfileRepository(BaseRepository[VoiceProfile]):
    """Voice profile repository."""

    model = VoiceProfile

    async def get_default(self) -> Optional[VoiceProfile]:
        """The voice flagged as the store default."""
        result = await self.session.execute(
            select(VoiceProfile)
            .where(VoiceProfile.is_default.is_(True))
            .order_by(VoiceProfile.created_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_by_provider_voice_id(
        self,
        provider: str,
        provider_voice_id: str,
    ) -> Optional[VoiceProfile]:
        result = await self.session.execute(
            select(VoiceProfile).where(
                VoiceProfile.provider == provider,
                VoiceProfile.provider_voice_id == provider_voice_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_all(self, include_premium: bool = True) -> List[VoiceProfile]:
        query = select(VoiceProfile).order_by(VoiceProfile.name.asc())
        if not include_premium:
            query = query.where(VoiceProfile.is_premium.is_(False))
        result = await self.session.execute(query)
        return list(result.scalars().all())


# =============================================================================
# Conversation Repositories
# =============================================================================


class ConversationRepository(BaseRepository[Conversation]):
    """Conversation repository."""

    model = Conversation

    async def touch(self, id: str, at: Optional[datetime] = None) -> None:
        """Refresh the conversation's last-activity timestamp."""
        await self.session.execute(
            update(Conversation)
            .where(Conversation.id == id)
            .values(updated_at=at or datetime.utcnow())
            .execution_options(synchronize_session=False)
        )

    async def mark_ended(self, id: str, at: Optional[datetime] = None) -> bool:
        """
        Stamp ``ended_at`` unless it is already set.

        Returns True only for the call that actually stamped it.
        """
        result = await self.session.execute(
            update(Conversation)
            .where(Conversation.id == id, Conversation.ended_at.is_(None))
            .values(ended_at=at or datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        stamped = result.rowcount == 1
        if stamped:
            conversation = await self.session.get(Conversation, id)
            if conversation is not None:
                await self.session.refresh(conversation, attribute_names=["ended_at"])
        return stamped


class MessageRepository(BaseRepository[Message]):
    """Message repository."""

    model = Message

    async def latest_created_at(self, conversation_id: str) -> Optional[datetime]:
        result = await self.session.execute(
            select(func.max(Message.created_at)).where(
                Message.conversation_id == conversation_id
            )
        )
        return result.scalar()

    async def add(
        self,
        conversation_id: str,
        role: str,
        content: str,
        audio_url: Optional[str] = None,
        duration: Optional[float] = None,
    ) -> Message:
        """
        Append a message.

        Creation times are kept strictly increasing within a conversation
        so that ordering by ``created_at`` is total.
        """
        now = datetime.utcnow()
        latest = await self.latest_created_at(conversation_id)
        if latest is not None and now <= latest:
            now = latest + timedelta(microseconds=1)

        return await self.create(
            conversation_id=conversation_id,
            role=role,
            content=content,
            audio_url=audio_url,
            duration=duration,
            created_at=now,
            updated_at=now,
        )

    async def list_recent(self, conversation_id: str, limit: int) -> List[Message]:
        """Most recent ``limit`` messages, newest first."""
        result = await self.session.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


# =============================================================================
# Call Repositories
# =============================================================================


class CallLogRepository(BaseRepository[CallLog]):
    """Call log repository."""

    model = CallLog

    async def get_by_provider_call_id(self, provider_call_id: str) -> Optional[CallLog]:
        """Get call log by the telephony provider's call identifier."""
        result = await self.session.execute(
            select(CallLog).where(CallLog.provider_call_id == provider_call_id)
        )
        return result.scalar_one_or_none()

    async def update_if_status(
        self,
        id: str,
        expected_status: str,
        **values,
    ) -> bool:
        """
        Compare-and-set update guarded on the current status.

        Returns False when another writer changed the status first.
        """
        result = await self.session.execute(
            update(CallLog)
            .where(CallLog.id == id, CallLog.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1
        if applied:
            call_log = await self.session.get(CallLog, id)
            if call_log is not None:
                await self.session.refresh(call_log)
        return applied

    async def count_by_user(self, user_id: str) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(CallLog).where(CallLog.user_id == user_id)
        )
        return result.scalar() or 0


__all__ = [
    "BaseRepository",
    "UserRepository",
    "UserPreferencesRepository",
    "PersonaRepository",
    "VoiceProfileRepository",
    "ConversationRepository",
    "MessageRepository",
    "CallLogRepository",
]
