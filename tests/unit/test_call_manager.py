"""Unit tests for the call lifecycle manager."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from personacall.calls.manager import CallLifecycleManager, parse_duration
from personacall.calls.state import TransitionOutcome
from personacall.database.repositories import (
    CallLogRepository,
    ConversationRepository,
    UserRepository,
)
from personacall.errors import (
    AccessDenied,
    CreditsExhausted,
    InvalidSignature,
    NotFoundError,
    ProviderError,
    UnknownCallback,
    ValidationError,
)
from personacall.providers.base import FailureKind, ProviderResult


@pytest_asyncio.fixture
async def manager(scope) -> CallLifecycleManager:
    return await scope.resolve(CallLifecycleManager)


class TestParseDuration:
    def test_values(self):
        assert parse_duration("42") == 42
        assert parse_duration(7) == 7
        assert parse_duration(None) is None
        assert parse_duration("") is None
        assert parse_duration("soon") is None
        assert parse_duration("-3") is None


class TestInboundTrigger:
    """Trigger messages start calls for registered senders."""

    @pytest.mark.asyncio
    async def test_trigger_then_credits_exhausted(self, seed, session, manager, telephony):
        """A FREE user with one credit gets exactly one call."""
        result = await manager.handle_inbound_message("Hi", "whatsapp:+15551234567")

        assert result.triggered is True
        assert result.call is not None
        call_logs = CallLogRepository(session)
        call_log = await call_logs.get_by_provider_call_id(result.call.sid)
        assert call_log.status == "initiated"
        assert call_log.user_id == seed.free_user_id
        assert await UserRepository(session).get_credits(seed.free_user_id) == 0

        with pytest.raises(CreditsExhausted):
            await manager.handle_inbound_message("Hi", "whatsapp:+15551234567")

        assert await call_logs.count_by_user(seed.free_user_id) == 1
        assert len(telephony.placed) == 1

    @pytest.mark.asyncio
    async def test_trigger_is_exact_and_case_insensitive(self, seed, manager, telephony):
        assert manager.is_trigger("  HI ")
        assert not manager.is_trigger("hi there")

        result = await manager.handle_inbound_message("hello", "whatsapp:+15551234567")

        assert result.triggered is False
        assert result.message == "No trigger detected, no action taken"
        assert telephony.placed == []

    @pytest.mark.asyncio
    async def test_unknown_sender_is_ignored(self, seed, manager, telephony):
        result = await manager.handle_inbound_message("hi", "whatsapp:+19999999999")

        assert result.triggered is False
        assert telephony.placed == []

    @pytest.mark.asyncio
    async def test_trigger_without_sender(self, seed, manager):
        with pytest.raises(ValidationError):
            await manager.handle_inbound_message("hi", None)


class TestInitiateCall:
    """Tests for outbound call placement."""

    @pytest.mark.asyncio
    async def test_callback_urls(self, seed, manager, telephony):
        call = await manager.initiate_call("+15559876543", user_id=seed.premium_user_id)

        placed = telephony.placed[0]
        assert placed["to_number"] == "+15559876543"
        assert placed["callback_url"].startswith("http://test/api/voice/stream?")
        assert f"personaId={seed.persona_id}" in placed["callback_url"]
        assert f"conversationId={call.conversation_id}" in placed["callback_url"]
        assert f"userId={seed.premium_user_id}" in placed["callback_url"]
        assert placed["status_callback_url"] == "http://test/api/whatsapp/call-status"

    @pytest.mark.asyncio
    async def test_creates_call_conversation(self, seed, session, manager):
        call = await manager.initiate_call("15559876543", user_id=seed.premium_user_id)

        conversation = await ConversationRepository(session).get_by_id(call.conversation_id)
        assert conversation.title == "WhatsApp Call"
        assert conversation.persona_id == seed.persona_id
        assert conversation.user_id == seed.premium_user_id

    @pytest.mark.asyncio
    async def test_continues_existing_conversation(self, seed, manager):
        call = await manager.initiate_call(
            "+15551234567",
            user_id=seed.free_user_id,
            conversation_id=seed.conversation_id,
        )

        assert call.conversation_id == seed.conversation_id

    @pytest.mark.asyncio
    async def test_phone_required(self, seed, manager):
        with pytest.raises(ValidationError) as exc_info:
            await manager.initiate_call("  ", user_id=seed.free_user_id)

        assert exc_info.value.field == "phoneNumber"

    @pytest.mark.asyncio
    async def test_unknown_user(self, seed, manager):
        with pytest.raises(NotFoundError):
            await manager.initiate_call("+15557770000")

    @pytest.mark.asyncio
    async def test_no_credits_places_nothing(self, seed, manager, telephony):
        with pytest.raises(CreditsExhausted):
            await manager.initiate_call("+15550001111", user_id=seed.broke_user_id)

        assert telephony.placed == []

    @pytest.mark.asyncio
    async def test_premium_persona_denied_for_free_tier(self, seed, session, manager, telephony):
        with pytest.raises(AccessDenied):
            await manager.initiate_call(
                "+15551234567",
                user_id=seed.free_user_id,
                persona_id=seed.premium_persona_id,
            )

        assert telephony.placed == []
        assert await UserRepository(session).get_credits(seed.free_user_id) == 1

    @pytest.mark.asyncio
    async def test_inactive_persona_rejected(self, seed, manager):
        with pytest.raises(ValidationError):
            await manager.initiate_call(
                "+15559876543",
                user_id=seed.premium_user_id,
                persona_id=seed.inactive_persona_id,
            )

    @pytest.mark.asyncio
    async def test_provider_failure_keeps_credits(self, seed, session, manager, telephony):
        telephony.fail_with = ProviderResult.fail(
            telephony.name,
            FailureKind.INVALID_REQUEST,
            "The 'To' number is not a valid phone number",
            status_code=400,
        )

        with pytest.raises(ProviderError) as exc_info:
            await manager.initiate_call("+15551234567", user_id=seed.free_user_id)

        assert exc_info.value.message == "The 'To' number is not a valid phone number"
        assert exc_info.value.kind == "invalid_request"
        assert await UserRepository(session).get_credits(seed.free_user_id) == 1
        assert await CallLogRepository(session).count_by_user(seed.free_user_id) == 0

    @pytest.mark.asyncio
    async def test_lost_credit_race_ends_placed_call(self, seed, session, manager, telephony):
        """The balance drains between check and decrement."""
        with patch.object(
            manager.guard.users, "consume_credit", AsyncMock(return_value=False)
        ):
            with pytest.raises(CreditsExhausted):
                await manager.initiate_call("+15551234567", user_id=seed.free_user_id)

        assert len(telephony.placed) == 1
        assert telephony.ended == [telephony.placed[0]["sid"]]
        assert await CallLogRepository(session).count_by_user(seed.free_user_id) == 0

    @pytest.mark.asyncio
    async def test_concurrent_calls_spend_one_credit(self, seed, db, container, telephony):
        """Parallel requests against a single credit place one billed call."""

        async def attempt():
            async with db.session() as s:
                async with container.create_scope({AsyncSession: s}) as scope:
                    manager = await scope.resolve(CallLifecycleManager)
                    return await manager.initiate_call(
                        "+15551234567", user_id=seed.free_user_id
                    )

        results = await asyncio.gather(*(attempt() for _ in range(4)), return_exceptions=True)

        placed = [r for r in results if not isinstance(r, BaseException)]
        rejected = [r for r in results if isinstance(r, BaseException)]
        assert len(placed) == 1
        assert len(rejected) == 3
        assert all(isinstance(e, CreditsExhausted) for e in rejected)

        async with db.session() as s:
            assert await UserRepository(s).get_credits(seed.free_user_id) == 0
            assert await CallLogRepository(s).count_by_user(seed.free_user_id) == 1
        # Calls placed by attempts that lost the decrement are hung up
        assert len(telephony.placed) - len(telephony.ended) == 1
        assert placed[0].sid not in telephony.ended


class TestStatusCallbacks:
    """Tests for applying provider status updates."""

    @pytest_asyncio.fixture
    async def call(self, seed, manager):
        return await manager.initiate_call("+15551234567", user_id=seed.free_user_id)

    @pytest.mark.asyncio
    async def test_completed_with_duration(self, seed, session, manager, call):
        await manager.on_status_callback(call.sid, "ringing")
        await manager.on_status_callback(call.sid, "in-progress")

        update = await manager.on_status_callback(call.sid, "completed", duration="42")

        assert update.outcome == TransitionOutcome.APPLIED
        call_log = await manager.get_call_log(call.sid)
        assert call_log.status == "completed"
        assert call_log.duration == 42
        assert call_log.end_time is not None

        conversation = await ConversationRepository(session).get_by_id(call.conversation_id)
        await session.refresh(conversation)
        assert conversation.ended_at is not None

    @pytest.mark.asyncio
    async def test_replayed_terminal_status_is_noop(self, seed, manager, call):
        await manager.on_status_callback(call.sid, "in-progress")
        await manager.on_status_callback(call.sid, "completed", duration="42")
        first = await manager.get_call_log(call.sid)
        end_time, duration = first.end_time, first.duration

        update = await manager.on_status_callback(call.sid, "completed", duration="99")

        assert update.outcome == TransitionOutcome.DUPLICATE
        call_log = await manager.get_call_log(call.sid)
        assert call_log.end_time == end_time
        assert call_log.duration == duration == 42

    @pytest.mark.asyncio
    async def test_out_of_order_status_ignored(self, seed, manager, call):
        await manager.on_status_callback(call.sid, "in-progress")

        update = await manager.on_status_callback(call.sid, "ringing")

        assert update.outcome == TransitionOutcome.REJECTED
        assert (await manager.get_call_log(call.sid)).status == "in_progress"

    @pytest.mark.asyncio
    async def test_failed_records_error(self, seed, manager, call):
        await manager.on_status_callback(
            call.sid, "failed", duration="0", error_message="Carrier rejected"
        )

        call_log = await manager.get_call_log(call.sid)
        assert call_log.status == "failed"
        assert call_log.error_message == "Carrier rejected"
        assert call_log.end_time is not None

    @pytest.mark.asyncio
    async def test_no_answer_does_not_stamp_end(self, seed, session, manager, call):
        await manager.on_status_callback(call.sid, "no-answer")

        call_log = await manager.get_call_log(call.sid)
        assert call_log.status == "no_answer"
        assert call_log.end_time is None
        # Credits are not refunded for unanswered calls
        assert await UserRepository(session).get_credits(seed.free_user_id) == 0

    @pytest.mark.asyncio
    async def test_unrecognized_status(self, seed, manager, call):
        update = await manager.on_status_callback(call.sid, "exploded")

        assert update.outcome == TransitionOutcome.REJECTED
        assert (await manager.get_call_log(call.sid)).status == "initiated"

    @pytest.mark.asyncio
    async def test_unknown_call(self, seed, manager):
        with pytest.raises(UnknownCallback):
            await manager.on_status_callback("CA-unknown", "completed")

    @pytest.mark.asyncio
    async def test_end_call(self, seed, manager, telephony, call):
        status = await manager.end_call(call.sid)

        assert status == "completed"
        assert telephony.ended == [call.sid]
        # Local state waits for the status callback
        assert (await manager.get_call_log(call.sid)).status == "initiated"


class TestCallbackSignatures:
    @pytest.mark.asyncio
    async def test_invalid_signature_rejected(self, manager):
        with pytest.raises(InvalidSignature):
            manager.validate_callback("http://test/api/whatsapp/call-status", {}, "forged")

    @pytest.mark.asyncio
    async def test_valid_signature_accepted(self, manager):
        manager.validate_callback(
            "http://test/api/whatsapp/call-status", {}, "valid-signature"
        )

    @pytest.mark.asyncio
    async def test_validation_can_be_disabled(self, manager):
        manager.settings.validate_signatures = False
        manager.validate_callback("http://test/api/whatsapp/call-status", {}, None)
