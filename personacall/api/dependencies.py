"""
API Dependencies

FastAPI dependencies for database sessions, the per-request DI scope,
and callback signature checks.
"""

import logging
from typing import AsyncGenerator, Dict

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..billing.guard import CreditGuard
from ..calls.manager import CallLifecycleManager
from ..config import Settings
from ..conversation.history import ConversationHistoryStore
from ..conversation.service import ConversationService
from ..database.base import DatabaseManager
from ..database.repositories import PersonaRepository
from ..di.container import Container, Scope
from ..pipeline.turn import TurnPipeline
from .base import form_to_dict


logger = logging.getLogger(__name__)


# =============================================================================
# Container & Session
# =============================================================================


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_db_session(
    container: Container = Depends(get_container),
) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database sessions.

    The session commits when the request succeeds and rolls back when it
    raises.
    """
    db = await container.resolve(DatabaseManager)
    async with db.session() as session:
        yield session


async def get_scope(
    container: Container = Depends(get_container),
    session: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[Scope, None]:
    """Request-scoped DI scope sharing the request's session."""
    async with container.create_scope({AsyncSession: session}) as scope:
        yield scope


# =============================================================================
# Services
# =============================================================================


async def get_call_manager(scope: Scope = Depends(get_scope)) -> CallLifecycleManager:
    return await scope.resolve(CallLifecycleManager)


async def get_turn_pipeline(scope: Scope = Depends(get_scope)) -> TurnPipeline:
    return await scope.resolve(TurnPipeline)


async def get_conversation_service(scope: Scope = Depends(get_scope)) -> ConversationService:
    return await scope.resolve(ConversationService)


async def get_history_store(scope: Scope = Depends(get_scope)) -> ConversationHistoryStore:
    return await scope.resolve(ConversationHistoryStore)


async def get_credit_guard(scope: Scope = Depends(get_scope)) -> CreditGuard:
    return await scope.resolve(CreditGuard)


async def get_persona_repository(scope: Scope = Depends(get_scope)) -> PersonaRepository:
    return await scope.resolve(PersonaRepository)


# =============================================================================
# Callback Authentication
# =============================================================================


def callback_url(request: Request, settings: Settings) -> str:
    """
    The public URL the provider signed.

    Behind a proxy the request URL differs from the configured public
    base, so the path and query are rebuilt on top of it.
    """
    url = f"{settings.webhook_base_url}{request.url.path}"
    if request.url.query:
        url = f"{url}?{request.url.query}"
    return url


async def verified_callback_params(
    request: Request,
    settings: Settings = Depends(get_settings),
    manager: CallLifecycleManager = Depends(get_call_manager),
) -> Dict[str, str]:
    """
    Form parameters of a provider callback, after signature validation.

    Raises InvalidSignature before any handler logic runs.
    """
    params = form_to_dict(await request.form())
    manager.validate_callback(
        callback_url(request, settings),
        params,
        request.headers.get("X-Twilio-Signature"),
    )
    return params


__all__ = [
    "get_container",
    "get_settings",
    "get_db_session",
    "get_scope",
    "get_call_manager",
    "get_turn_pipeline",
    "get_conversation_service",
    "get_history_store",
    "get_credit_guard",
    "get_persona_repository",
    "callback_url",
    "verified_callback_params",
]
