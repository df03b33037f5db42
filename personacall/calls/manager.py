"""
Call Lifecycle Manager

Turns triggers into outbound calls and applies provider status callbacks
to the persisted call log.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import structlog

from ..billing.guard import CreditGuard
from ..config import Settings
from ..conversation.service import ConversationService
from ..core.logging import LogContext
from ..database.models import CallDirection, CallLog, User
from ..database.repositories import (
    CallLogRepository,
    ConversationRepository,
    UserRepository,
)
from ..errors import (
    CreditsExhausted,
    InvalidSignature,
    NotFoundError,
    UnknownCallback,
    ValidationError,
)
from ..providers.base import TelephonyProvider
from ..providers.twilio_provider import normalize_phone_number
from .state import (
    ENDING_STATUSES,
    CallStatus,
    TransitionOutcome,
    evaluate_transition,
    normalize_status,
)


logger = structlog.get_logger(__name__)

CALL_CONVERSATION_TITLE = "WhatsApp Call"


@dataclass
class InitiatedCall:
    """An outbound call accepted by the provider and logged locally."""

    sid: str
    status: str
    call_log_id: str
    conversation_id: str
    user_id: str
    persona_id: str


@dataclass
class StatusUpdate:
    """What a status callback did to the call log."""

    provider_call_id: str
    outcome: TransitionOutcome
    status: Optional[str] = None
    call_log_id: Optional[str] = None


@dataclass
class InboundResult:
    triggered: bool
    message: str
    call: Optional[InitiatedCall] = None


def parse_duration(value: Any) -> Optional[int]:
    """Parse a provider duration in seconds; None when absent or invalid."""
    if value is None or value == "":
        return None
    try:
        duration = int(str(value).strip())
    except ValueError:
        return None
    return duration if duration >= 0 else None


class CallLifecycleManager:
    """
    Owns the call state machine from trigger to terminal status.

    Credit accounting: credits are checked before placement and consumed
    atomically only after the provider accepts the call.
    """

    def __init__(
        self,
        settings: Settings,
        telephony: TelephonyProvider,
        guard: CreditGuard,
        conversations: ConversationService,
        users: UserRepository,
        call_logs: CallLogRepository,
        conversation_records: ConversationRepository,
    ):
        self.settings = settings
        self.telephony = telephony
        self.guard = guard
        self.conversations = conversations
        self.users = users
        self.call_logs = call_logs
        self.conversation_records = conversation_records

    # -------------------------------------------------------------------------
    # Callback URLs
    # -------------------------------------------------------------------------

    def voice_callback_url(self, persona_id: str, conversation_id: str, user_id: str) -> str:
        query = urlencode({
            "personaId": persona_id,
            "conversationId": conversation_id,
            "userId": user_id,
        })
        return f"{self.settings.webhook_base_url}/api/voice/stream?{query}"

    def status_callback_url(self) -> str:
        return f"{self.settings.webhook_base_url}/api/whatsapp/call-status"

    # -------------------------------------------------------------------------
    # Initiation
    # -------------------------------------------------------------------------

    async def resolve_user(self, user_id: Optional[str], phone_number: Optional[str]) -> User:
        """Find the calling user by id, falling back to phone number."""
        user = None
        if user_id:
            user = await self.users.get_by_id(user_id)
        elif phone_number:
            user = await self.users.get_by_phone(phone_number)
        if user is None:
            raise NotFoundError("User", user_id, message="User not found")
        return user

    async def initiate_call(
        self,
        to_number: Optional[str],
        user_id: Optional[str] = None,
        persona_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> InitiatedCall:
        """
        Place an outbound call for a user.

        Raises:
            ValidationError: no phone number
            NotFoundError: unknown user, persona or conversation
            CreditsExhausted: no call credits left
            AccessDenied: premium persona for a FREE-tier user
            ProviderError: the telephony provider rejected the call
        """
        if not to_number or not to_number.strip():
            raise ValidationError("Phone number is required", field="phoneNumber")
        phone_number = normalize_phone_number(to_number)

        user = await self.resolve_user(user_id, phone_number)

        with LogContext(user_id=user.id):
            await self.guard.require_credits(user.id)

            persona = await self.conversations.resolve_persona(user, persona_id)
            await self.guard.require_premium_access(
                user.id,
                persona.is_premium,
                message="This persona requires a premium subscription",
                user=user,
            )

            conversation = await self.conversations.resolve_or_create(
                user, persona, conversation_id, title=CALL_CONVERSATION_TITLE
            )

            result = await self.telephony.place_call(
                to_number=phone_number,
                callback_url=self.voice_callback_url(persona.id, conversation.id, user.id),
                status_callback_url=self.status_callback_url(),
            )
            if not result.success:
                logger.error(
                    "call_placement_failed",
                    conversation_id=conversation.id,
                    provider=result.provider,
                    kind=result.kind.value if result.kind else None,
                    error=result.message,
                )
                raise result.to_error()

            placed = result.value

            if not await self.guard.consume_credit(user.id):
                # Lost the race for the last credit after placement
                await self._abandon_call(placed.sid)
                raise CreditsExhausted(user_id=user.id)

            call_log = await self.call_logs.create(
                user_id=user.id,
                conversation_id=conversation.id,
                provider_call_id=placed.sid,
                direction=CallDirection.OUTBOUND.value,
                status=CallStatus.INITIATED.value,
                phone_number=phone_number,
                from_number=placed.from_number,
                to_number=placed.to_number,
                start_time=datetime.utcnow(),
            )

            logger.info(
                "call_initiated",
                call_sid=placed.sid,
                conversation_id=conversation.id,
                persona_id=persona.id,
            )

        return InitiatedCall(
            sid=placed.sid,
            status=placed.status,
            call_log_id=call_log.id,
            conversation_id=conversation.id,
            user_id=user.id,
            persona_id=persona.id,
        )

    async def _abandon_call(self, provider_call_id: str) -> None:
        result = await self.telephony.end_call(provider_call_id)
        if not result.success:
            logger.error(
                "abandoned_call_not_ended",
                call_sid=provider_call_id,
                error=result.message,
            )

    # -------------------------------------------------------------------------
    # Status callbacks
    # -------------------------------------------------------------------------

    def validate_callback(
        self,
        url: str,
        params: Dict[str, Any],
        signature: Optional[str],
    ) -> None:
        """Reject a callback whose signature does not verify."""
        if not self.settings.validate_signatures:
            return
        if not self.telephony.validate_signature(url, params, signature):
            logger.warning("callback_signature_invalid", url=url)
            raise InvalidSignature()

    async def on_status_callback(
        self,
        provider_call_id: str,
        new_status: Optional[str],
        duration: Any = None,
        error_message: Optional[str] = None,
    ) -> StatusUpdate:
        """
        Apply a provider status to the matching call log.

        Replays and out-of-order deliveries are no-ops. Raises
        UnknownCallback when no call log matches.
        """
        call_log = await self.call_logs.get_by_provider_call_id(provider_call_id)
        if call_log is None:
            logger.warning("status_callback_unknown_call", call_sid=provider_call_id)
            raise UnknownCallback(provider_call_id)

        requested = normalize_status(new_status)
        if requested is None:
            logger.warning(
                "status_callback_unrecognized_status",
                call_sid=provider_call_id,
                status=new_status,
            )
            return StatusUpdate(
                provider_call_id, TransitionOutcome.REJECTED, call_log.status, call_log.id
            )

        current = CallStatus(call_log.status)
        outcome = evaluate_transition(current, requested)
        if outcome != TransitionOutcome.APPLIED:
            logger.info(
                "status_callback_ignored",
                call_sid=provider_call_id,
                current=current.value,
                requested=requested.value,
                outcome=outcome.value,
            )
            return StatusUpdate(provider_call_id, outcome, current.value, call_log.id)

        values: Dict[str, Any] = {"status": requested.value, "updated_at": datetime.utcnow()}
        if requested in ENDING_STATUSES:
            values["end_time"] = datetime.utcnow()
            parsed = parse_duration(duration)
            if parsed is not None:
                values["duration"] = parsed
            if error_message:
                values["error_message"] = error_message

        if not await self.call_logs.update_if_status(call_log.id, current.value, **values):
            # A concurrent callback moved the call first
            refreshed = await self.call_logs.get_by_id(call_log.id)
            logger.info("status_callback_superseded", call_sid=provider_call_id)
            return StatusUpdate(
                provider_call_id,
                TransitionOutcome.DUPLICATE,
                refreshed.status if refreshed else None,
                call_log.id,
            )

        if requested == CallStatus.COMPLETED and call_log.conversation_id:
            await self.conversation_records.mark_ended(call_log.conversation_id)

        logger.info(
            "call_status_updated",
            call_sid=provider_call_id,
            previous=current.value,
            status=requested.value,
        )
        return StatusUpdate(
            provider_call_id, TransitionOutcome.APPLIED, requested.value, call_log.id
        )

    async def end_call(self, provider_call_id: str) -> str:
        """
        Ask the provider to hang up.

        Local state is left alone; the resulting status callback updates
        the call log.
        """
        result = await self.telephony.end_call(provider_call_id)
        status = result.unwrap()
        logger.info("call_end_requested", call_sid=provider_call_id)
        return status

    async def get_call_log(self, provider_call_id: str) -> CallLog:
        call_log = await self.call_logs.get_by_provider_call_id(provider_call_id)
        if call_log is None:
            raise NotFoundError("CallLog", provider_call_id)
        return call_log

    # -------------------------------------------------------------------------
    # Inbound messages
    # -------------------------------------------------------------------------

    def is_trigger(self, body: Optional[str]) -> bool:
        """Exact, case-insensitive match against the trigger phrase."""
        if body is None:
            return False
        return body.strip().lower() == self.settings.trigger_phrase.strip().lower()

    async def handle_inbound_message(
        self,
        body: Optional[str],
        from_number: Optional[str],
        persona_id: Optional[str] = None,
    ) -> InboundResult:
        """Start a call when an inbound message is the trigger phrase."""
        if not self.is_trigger(body):
            return InboundResult(False, "No trigger detected, no action taken")

        if not from_number:
            raise ValidationError("Sender number is required", field="From")
        phone_number = normalize_phone_number(from_number)

        user = await self.users.get_by_phone(phone_number)
        if user is None:
            logger.warning("trigger_from_unknown_sender", phone_number=phone_number)
            return InboundResult(False, "Sender is not a registered user, no action taken")

        call = await self.initiate_call(phone_number, user_id=user.id, persona_id=persona_id)
        return InboundResult(True, "Trigger detected, voice call initiated", call)


__all__ = [
    "CallLifecycleManager",
    "InitiatedCall",
    "StatusUpdate",
    "InboundResult",
    "parse_duration",
    "CALL_CONVERSATION_TITLE",
]
