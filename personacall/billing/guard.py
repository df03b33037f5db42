"""
Credit & Access Guard

Call-credit balance checks, the atomic credit decrement, and premium
tier gating applied before billable or premium actions.
"""

from typing import Optional

import structlog

from ..database.models import User
from ..database.repositories import UserRepository
from ..errors import AccessDenied, CreditsExhausted, NotFoundError


logger = structlog.get_logger(__name__)


class CreditGuard:
    """
    Usage accounting around billable actions.

    ``check_*`` methods are non-mutating gates; ``require_*`` variants
    raise the matching user-facing error instead of returning False.
    """

    def __init__(self, users: UserRepository):
        self.users = users

    async def _get_user(self, user_id: str) -> User:
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def check_credits(self, user_id: str) -> bool:
        """True iff the user has at least one call credit."""
        credits = await self.users.get_credits(user_id)
        if credits is None:
            raise NotFoundError("User", user_id)
        return credits > 0

    async def consume_credit(self, user_id: str) -> bool:
        """
        Atomically spend one credit.

        Only call this once the provider has accepted the call. Returns
        False when the balance was already zero.
        """
        consumed = await self.users.consume_credit(user_id)
        if consumed:
            logger.info("call_credit_consumed", user_id=user_id)
        else:
            logger.warning("call_credit_unavailable", user_id=user_id)
        return consumed

    async def check_premium_access(
        self,
        user_id: str,
        resource_is_premium: bool,
        user: Optional[User] = None,
    ) -> bool:
        """True if the resource is not premium or the user is not FREE tier."""
        if not resource_is_premium:
            return True
        user = user or await self._get_user(user_id)
        return not user.is_free_tier

    async def require_credits(self, user_id: str) -> None:
        if not await self.check_credits(user_id):
            logger.info("call_rejected_no_credits", user_id=user_id)
            raise CreditsExhausted(user_id=user_id)

    async def require_premium_access(
        self,
        user_id: str,
        resource_is_premium: bool,
        message: str = "This resource requires a premium subscription",
        user: Optional[User] = None,
    ) -> None:
        if not await self.check_premium_access(user_id, resource_is_premium, user=user):
            logger.info("premium_resource_denied", user_id=user_id)
            raise AccessDenied(message, details={"user_id": user_id})


__all__ = ["CreditGuard"]
