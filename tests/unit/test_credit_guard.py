"""Unit tests for call-credit accounting and premium gating."""

import pytest

from personacall.billing.guard import CreditGuard
from personacall.database.repositories import UserRepository
from personacall.errors import AccessDenied, CreditsExhausted, NotFoundError


@pytest.fixture
def guard(session) -> CreditGuard:
    return CreditGuard(UserRepository(session))


class TestCredits:
    """Tests for credit checks and the atomic decrement."""

    @pytest.mark.asyncio
    async def test_check_credits(self, seed, guard):
        assert await guard.check_credits(seed.free_user_id) is True
        assert await guard.check_credits(seed.broke_user_id) is False

    @pytest.mark.asyncio
    async def test_unknown_user(self, seed, guard):
        with pytest.raises(NotFoundError):
            await guard.check_credits("missing-user")

    @pytest.mark.asyncio
    async def test_consume_never_goes_negative(self, seed, session, guard):
        """Five attempts against five credits, then two more that must fail."""
        outcomes = [await guard.consume_credit(seed.premium_user_id) for _ in range(7)]

        assert outcomes.count(True) == 5
        assert outcomes[5:] == [False, False]
        assert await UserRepository(session).get_credits(seed.premium_user_id) == 0

    @pytest.mark.asyncio
    async def test_consume_refreshes_loaded_user(self, seed, session, guard):
        users = UserRepository(session)
        user = await users.get_by_id(seed.free_user_id)
        assert user.call_credits == 1

        assert await guard.consume_credit(seed.free_user_id) is True

        assert user.call_credits == 0

    @pytest.mark.asyncio
    async def test_require_credits(self, seed, guard):
        await guard.require_credits(seed.free_user_id)

        with pytest.raises(CreditsExhausted):
            await guard.require_credits(seed.broke_user_id)


class TestPremiumAccess:
    """Tests for premium tier gating."""

    @pytest.mark.asyncio
    async def test_non_premium_resource_always_allowed(self, seed, guard):
        assert await guard.check_premium_access(seed.free_user_id, False) is True

    @pytest.mark.asyncio
    async def test_premium_resource_by_tier(self, seed, guard):
        assert await guard.check_premium_access(seed.free_user_id, True) is False
        assert await guard.check_premium_access(seed.premium_user_id, True) is True

    @pytest.mark.asyncio
    async def test_require_premium_access_message(self, seed, guard):
        with pytest.raises(AccessDenied) as exc_info:
            await guard.require_premium_access(
                seed.free_user_id,
                True,
                message="This voice requires a premium subscription",
            )

        assert exc_info.value.message == "This voice requires a premium subscription"
        assert exc_info.value.status_code == 403
