"""Concrete adapters for the collaborator ports in domain/ports.py.

- SqlEngagementDirectory / SqlWalletDirectory / ActivityPointsEligibility read
  the marketplace's own tables; this engine never writes to them.
- CachedRateSource reads the price a separate oracle job keeps in Redis.
- EventPublisher broadcasts on Redis pub/sub, or only logs when Redis is absent.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from redis.exceptions import RedisError

from escrow_governance.domain.enums import LinkedWorkKind
from escrow_governance.domain.payouts import normalize_address
from escrow_governance.domain.ports import Collaborators, Engagement
from escrow_governance.infrastructure.database.repositories import MemberDirectoryRepository
from escrow_governance.infrastructure.redis_client import publish_event
from escrow_governance.logging_config import get_logger

if TYPE_CHECKING:
    import redis.asyncio as aioredis
    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_governance.config import Settings
    from escrow_governance.domain.enums import DaoStat, WorkflowState

logger = get_logger(__name__)


class SqlEngagementDirectory:
    def __init__(self, session: AsyncSession) -> None:
        self._repo = MemberDirectoryRepository(session)

    async def get_engagement(self, engagement_id: str) -> Engagement | None:
        record = await self._repo.get_engagement(engagement_id)
        if record is None:
            return None
        return Engagement(
            engagement_id=record.id,
            client_id=record.client_id,
            talent_id=record.talent_id,
            linked_work_id=record.linked_work_id,
            linked_work_kind=LinkedWorkKind(record.linked_work_kind or "None"),
        )


class SqlWalletDirectory:
    def __init__(self, session: AsyncSession) -> None:
        self._repo = MemberDirectoryRepository(session)

    async def get_wallet_address(self, user_id: str) -> str | None:
        profile = await self._repo.get_profile(user_id)
        if profile is None:
            return None
        return normalize_address(profile.wallet_address)


class ActivityPointsEligibility:
    """Members qualify for DAO actions by accumulated activity points."""

    def __init__(self, session: AsyncSession, settings: Settings) -> None:
        self._repo = MemberDirectoryRepository(session)
        self._settings = settings

    async def _points(self, user_id: str) -> int:
        profile = await self._repo.get_profile(user_id)
        return profile.activity_points if profile else 0

    async def can_vote(self, user_id: str) -> bool:
        return await self._points(user_id) >= self._settings.min_vote_activity_points

    async def can_propose(self, user_id: str) -> bool:
        return await self._points(user_id) >= self._settings.min_proposal_activity_points

    async def count_eligible_voters(self) -> int:
        return await self._repo.count_with_points(self._settings.min_vote_activity_points)


class CachedRateSource:
    """USD price of the settlement currency, as cached in Redis by the price oracle."""

    def __init__(self, redis: aioredis.Redis | None, settings: Settings) -> None:
        self._redis = redis
        self._settings = settings

    async def crypto_price_usd(self) -> Decimal:
        fallback = self._settings.fallback_crypto_price_usd
        if self._redis is None:
            return fallback
        try:
            raw = await self._redis.get(self._settings.redis_rate_key)
        except RedisError as exc:
            logger.warning("rates.redis_error", error=str(exc), fallback=str(fallback))
            return fallback
        if raw is None:
            logger.warning(
                "rates.cache_miss", key=self._settings.redis_rate_key, fallback=str(fallback)
            )
            return fallback
        try:
            price = Decimal(str(raw))
        except InvalidOperation:
            logger.warning("rates.invalid_cached_value", value=raw, fallback=str(fallback))
            return fallback
        if price <= 0:
            logger.warning("rates.non_positive_price", value=raw, fallback=str(fallback))
            return fallback
        return price


class EventPublisher:
    """NotificationSink that publishes on Redis pub/sub.

    Without a Redis connection the events are only logged, so the engine
    keeps working in tests and single-process development.
    """

    def __init__(self, redis: aioredis.Redis | None) -> None:
        self._redis = redis

    async def _emit(self, event: str, payload: dict) -> None:
        logger.info(event, **payload)
        if self._redis is not None:
            await publish_event(self._redis, event, payload)

    async def state_changed(self, engagement_id: str, new_state: WorkflowState) -> None:
        await self._emit(
            "escrow.state_changed",
            {"engagement_id": engagement_id, "workflow_state": str(new_state)},
        )

    async def proposal_updated(self, proposal_id: str) -> None:
        await self._emit("governance.proposal_updated", {"proposal_id": proposal_id})

    async def work_completed(self, engagement: Engagement) -> None:
        await self._emit(
            "work.completed",
            {
                "engagement_id": engagement.engagement_id,
                "linked_work_id": engagement.linked_work_id,
                "linked_work_kind": str(engagement.linked_work_kind),
            },
        )

    async def activity_reward(self, user_id: str, points: int, reason: str) -> None:
        await self._emit(
            "rewards.activity",
            {"user_id": user_id, "points": points, "reason": reason},
        )

    async def dao_stat(self, user_id: str, stat: DaoStat) -> None:
        await self._emit("rewards.dao_stat", {"user_id": user_id, "stat": str(stat)})


def build_collaborators(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    settings: Settings,
) -> Collaborators:
    """Wire the production adapters for one unit of work."""
    return Collaborators(
        engagements=SqlEngagementDirectory(session),
        wallets=SqlWalletDirectory(session),
        eligibility=ActivityPointsEligibility(session, settings),
        rates=CachedRateSource(redis, settings),
        notifier=EventPublisher(redis),
    )
