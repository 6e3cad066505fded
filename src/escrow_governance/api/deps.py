"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
collaborator adapters, services, the clock, and configuration. Tests swap
any of them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import redis.asyncio as aioredis
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_governance.config import Settings, get_settings
from escrow_governance.domain.clock import Clock, SystemClock
from escrow_governance.domain.ports import Collaborators
from escrow_governance.infrastructure.collaborators import build_collaborators
from escrow_governance.infrastructure.database.engine import get_async_session
from escrow_governance.infrastructure.redis_client import get_redis_or_none
from escrow_governance.services.escrow_service import EscrowWorkflowService
from escrow_governance.services.governance_service import GovernanceService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_redis_client() -> aioredis.Redis | None:
    """Provide the Redis client, or None when startup could not connect."""
    return get_redis_or_none()


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


def get_clock() -> Clock:
    return SystemClock()


def get_collaborators(
    session: AsyncSession = Depends(get_db_session),
    redis: aioredis.Redis | None = Depends(get_redis_client),
    settings: Settings = Depends(get_app_settings),
) -> Collaborators:
    """Provide the marketplace adapters bound to the current session."""
    return build_collaborators(session, redis, settings)


def get_escrow_service(
    session: AsyncSession = Depends(get_db_session),
    collaborators: Collaborators = Depends(get_collaborators),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> EscrowWorkflowService:
    return EscrowWorkflowService(session, collaborators, settings=settings, clock=clock)


def get_governance_service(
    session: AsyncSession = Depends(get_db_session),
    collaborators: Collaborators = Depends(get_collaborators),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> GovernanceService:
    return GovernanceService(session, collaborators, settings=settings, clock=clock)


def get_caller_id(x_user_id: str = Header(..., min_length=1, max_length=64)) -> str:
    """Id of the authenticated caller, set by the gateway in front of this service."""
    return x_user_id


def get_viewer_id(x_user_id: str | None = Header(default=None, max_length=64)) -> str | None:
    """Like get_caller_id, but anonymous reads are allowed."""
    return x_user_id
