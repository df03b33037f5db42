"""Integration tests for reply generation and persona listing."""

import pytest

from personacall.database.repositories import MessageRepository


async def _messages(db, conversation_id):
    async with db.session() as s:
        return list(reversed(await MessageRepository(s).list_recent(conversation_id, 100)))


class TestGenerate:
    """Tests for POST /api/ai/generate."""

    @pytest.mark.asyncio
    async def test_generate_without_conversation(self, client, seed, completion):
        response = await client.post(
            "/api/ai/generate",
            json={"transcribedText": "how are you?", "personaId": seed.persona_id},
        )

        assert response.status_code == 200
        assert response.json() == {"response": "Doing great, thanks for asking!"}
        assert completion.prompts[0].startswith("You are Ava, a warm and curious friend.")

    @pytest.mark.asyncio
    async def test_generate_stores_both_sides(self, client, seed, db, completion):
        response = await client.post(
            "/api/ai/generate",
            json={
                "transcribedText": "how are you?",
                "personaId": seed.persona_id,
                "conversationId": seed.conversation_id,
            },
        )

        assert response.status_code == 200
        messages = await _messages(db, seed.conversation_id)
        assert [(m.role, m.content) for m in messages] == [
            ("user", "how are you?"),
            ("assistant", "Doing great, thanks for asking!"),
        ]
        assert completion.prompts[0].count("how are you?") == 1

    @pytest.mark.asyncio
    async def test_missing_fields(self, client, seed):
        response = await client.post("/api/ai/generate", json={"personaId": seed.persona_id})

        assert response.status_code == 400
        assert response.json()["error"]["message"] == (
            "Missing required fields: transcribedText or personaId"
        )

    @pytest.mark.asyncio
    async def test_unknown_persona(self, client, seed):
        response = await client.post(
            "/api/ai/generate", json={"transcribedText": "hi", "personaId": "missing"}
        )

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Persona not found"

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, client, seed):
        response = await client.post(
            "/api/ai/generate",
            json={
                "transcribedText": "hi",
                "personaId": seed.persona_id,
                "conversationId": "missing",
            },
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_completion_failure_rolls_back(self, client, seed, db, completion):
        completion.fail = True

        response = await client.post(
            "/api/ai/generate",
            json={
                "transcribedText": "hi",
                "personaId": seed.persona_id,
                "conversationId": seed.conversation_id,
            },
        )

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "SRV_5003"
        assert error["details"]["kind"] == "rate_limited"
        assert await _messages(db, seed.conversation_id) == []

    @pytest.mark.asyncio
    async def test_status(self, client):
        response = await client.get("/api/ai/generate")

        assert response.json() == {"status": "AI generation service is running"}


class TestPersonas:
    @pytest.mark.asyncio
    async def test_lists_active_oldest_first(self, client, seed):
        response = await client.get("/api/ai/persona")

        assert response.status_code == 200
        personas = response.json()["personas"]
        assert [p["name"] for p in personas] == ["Ava", "Nova"]
        assert personas[0] == {
            "id": seed.persona_id,
            "name": "Ava",
            "description": "A warm and curious friend",
            "imageUrl": "https://cdn.example.com/ava.png",
        }
