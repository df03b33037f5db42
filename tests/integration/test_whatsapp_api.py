"""Integration tests for the WhatsApp webhook and call endpoints."""

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from personacall.database.models import Conversation
from personacall.database.repositories import CallLogRepository, UserRepository
from personacall.providers.base import FailureKind, ProviderResult


async def _credits(db, user_id):
    async with db.session() as s:
        return await UserRepository(s).get_credits(user_id)


async def _call_log(db, sid):
    async with db.session() as s:
        return await CallLogRepository(s).get_by_provider_call_id(sid)


async def _conversation_count(db, user_id):
    async with db.session() as s:
        result = await s.execute(
            select(func.count()).select_from(Conversation).where(Conversation.user_id == user_id)
        )
        return result.scalar_one()


class TestWebhook:
    """Tests for inbound WhatsApp messages."""

    @pytest.mark.asyncio
    async def test_webhook_is_active(self, client):
        response = await client.get("/api/whatsapp/webhook")

        assert response.status_code == 200
        assert response.json() == {"message": "WhatsApp webhook endpoint is active."}

    @pytest.mark.asyncio
    async def test_trigger_places_one_call(
        self, client, seed, db, telephony, signed_headers
    ):
        response = await client.post(
            "/api/whatsapp/webhook",
            data={"Body": "hi", "From": "whatsapp:+15551234567"},
            headers=signed_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Trigger detected, voice call initiated"
        assert data["sid"] == telephony.placed[0]["sid"]
        assert await _credits(db, seed.free_user_id) == 0

        call_log = await _call_log(db, data["sid"])
        assert call_log.status == "initiated"
        assert call_log.user_id == seed.free_user_id

    @pytest.mark.asyncio
    async def test_second_trigger_without_credits(
        self, client, seed, db, telephony, signed_headers
    ):
        await client.post(
            "/api/whatsapp/webhook",
            data={"Body": "Hi", "From": "whatsapp:+15551234567"},
            headers=signed_headers,
        )

        response = await client.post(
            "/api/whatsapp/webhook",
            data={"Body": "Hi", "From": "whatsapp:+15551234567"},
            headers=signed_headers,
        )

        assert response.status_code == 403
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "BIZ_6003"
        assert len(telephony.placed) == 1

    @pytest.mark.asyncio
    async def test_non_trigger_is_acknowledged(
        self, client, seed, telephony, signed_headers
    ):
        response = await client.post(
            "/api/whatsapp/webhook",
            data={"Body": "what's up", "From": "whatsapp:+15551234567"},
            headers=signed_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"message": "No trigger detected, no action taken"}
        assert telephony.placed == []

    @pytest.mark.asyncio
    async def test_json_body(self, client, seed, telephony, signed_headers):
        response = await client.post(
            "/api/whatsapp/webhook",
            json={"Body": "hi", "From": "+15559876543"},
            headers=signed_headers,
        )

        assert response.status_code == 200
        assert len(telephony.placed) == 1

    @pytest.mark.asyncio
    async def test_unsigned_webhook_rejected(self, client, seed, db, telephony):
        response = await client.post(
            "/api/whatsapp/webhook",
            data={"Body": "hi", "From": "whatsapp:+15551234567"},
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTH_1006"
        assert telephony.placed == []
        assert await _credits(db, seed.free_user_id) == 1

    @pytest.mark.asyncio
    async def test_forged_webhook_signature_rejected(self, client, seed, telephony):
        response = await client.post(
            "/api/whatsapp/webhook",
            data={"Body": "hi", "From": "whatsapp:+15551234567"},
            headers={"X-Twilio-Signature": "forged"},
        )

        assert response.status_code == 403
        assert telephony.placed == []


class TestInitiateCall:
    """Tests for POST /api/whatsapp/call."""

    @pytest.mark.asyncio
    async def test_call(self, client, seed, db):
        response = await client.post(
            "/api/whatsapp/call",
            json={"phoneNumber": "+15559876543", "userId": seed.premium_user_id},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "WhatsApp call initiated"
        assert data["status"] == "queued"
        assert set(data) == {"success", "message", "sid", "status", "conversationId", "callLogId"}
        assert await _credits(db, seed.premium_user_id) == 4

        call_log = await _call_log(db, data["sid"])
        assert call_log.id == data["callLogId"]
        assert call_log.conversation_id == data["conversationId"]

    @pytest.mark.asyncio
    async def test_user_found_by_phone(self, client, seed):
        response = await client.post(
            "/api/whatsapp/call", json={"phoneNumber": "whatsapp:+15559876543"}
        )

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_missing_phone(self, client, seed):
        response = await client.post("/api/whatsapp/call", json={"userId": seed.free_user_id})

        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"field": "phoneNumber"}

    @pytest.mark.asyncio
    async def test_unknown_user(self, client, seed):
        response = await client.post("/api/whatsapp/call", json={"phoneNumber": "+15557770000"})

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "User not found"

    @pytest.mark.asyncio
    async def test_premium_persona_for_free_user(self, client, seed, db, telephony):
        response = await client.post(
            "/api/whatsapp/call",
            json={"phoneNumber": "+15551234567", "personaId": seed.premium_persona_id},
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTH_1004"
        assert telephony.placed == []
        assert await _credits(db, seed.free_user_id) == 1

    @pytest.mark.asyncio
    async def test_no_credits(self, client, seed):
        response = await client.post(
            "/api/whatsapp/call", json={"phoneNumber": "+15550001111"}
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "BIZ_6003"

    @pytest.mark.asyncio
    async def test_provider_failure_rolls_back(self, client, seed, db, telephony):
        telephony.fail_with = ProviderResult.fail(
            telephony.name, FailureKind.AUTH, "Authenticate", status_code=401
        )

        response = await client.post(
            "/api/whatsapp/call",
            json={"phoneNumber": "+15559876543", "userId": seed.premium_user_id},
        )

        assert response.status_code == 500
        body = response.json()
        assert body["error"]["code"] == "SRV_5003"
        assert body["error"]["message"] == "Authenticate"
        assert await _credits(db, seed.premium_user_id) == 5
        assert await _conversation_count(db, seed.premium_user_id) == 0

    @pytest.mark.asyncio
    async def test_malformed_body(self, client, seed):
        response = await client.post("/api/whatsapp/call", json={"phoneNumber": 12})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VAL_2001"


class TestCallStatus:
    """Tests for the status callback endpoint."""

    @pytest_asyncio.fixture
    async def sid(self, client, seed):
        response = await client.post(
            "/api/whatsapp/call",
            json={"phoneNumber": "+15559876543", "userId": seed.premium_user_id},
        )
        return response.json()["sid"]

    @pytest.mark.asyncio
    async def test_completed(self, client, db, sid, signed_headers):
        response = await client.post(
            "/api/whatsapp/call-status",
            data={"CallSid": sid, "CallStatus": "completed", "CallDuration": "42"},
            headers=signed_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        call_log = await _call_log(db, sid)
        assert call_log.status == "completed"
        assert call_log.duration == 42
        assert call_log.end_time is not None

    @pytest.mark.asyncio
    async def test_replay_is_acknowledged(self, client, db, sid, signed_headers):
        for duration in ("42", "99"):
            response = await client.post(
                "/api/whatsapp/call-status",
                data={"CallSid": sid, "CallStatus": "completed", "CallDuration": duration},
                headers=signed_headers,
            )
            assert response.status_code == 200

        assert (await _call_log(db, sid)).duration == 42

    @pytest.mark.asyncio
    async def test_invalid_signature(self, client, db, sid):
        response = await client.post(
            "/api/whatsapp/call-status",
            data={"CallSid": sid, "CallStatus": "completed"},
            headers={"X-Twilio-Signature": "forged"},
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTH_1006"
        assert (await _call_log(db, sid)).status == "initiated"

    @pytest.mark.asyncio
    async def test_unknown_sid(self, client, seed, signed_headers):
        response = await client.post(
            "/api/whatsapp/call-status",
            data={"CallSid": "CA-unknown", "CallStatus": "completed"},
            headers=signed_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}

    @pytest.mark.asyncio
    async def test_missing_call_sid(self, client, seed, signed_headers):
        response = await client.post(
            "/api/whatsapp/call-status",
            data={"CallStatus": "completed"},
            headers=signed_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}

    @pytest.mark.asyncio
    async def test_end_call(self, client, db, sid, telephony):
        response = await client.post(f"/api/whatsapp/call/{sid}/end")

        assert response.status_code == 200
        assert response.json() == {"success": True, "sid": sid, "status": "completed"}
        assert telephony.ended == [sid]
        assert (await _call_log(db, sid)).status == "initiated"
