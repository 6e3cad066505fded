"""Redis client for event broadcast and the cached crypto price.

Usage:
    from escrow_governance.infrastructure.redis_client import get_redis_or_none, publish_event

    redis = get_redis_or_none()
    if redis is not None:
        await publish_event(redis, "escrow.state_changed", payload)
"""

from __future__ import annotations

import json

import redis.asyncio as aioredis

from escrow_governance.config import get_settings
from escrow_governance.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


async def init_redis() -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    settings = get_settings()
    client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    # Only a client that answered a ping is handed out
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    _redis_client = client
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_redis_or_none() -> aioredis.Redis | None:
    """Return the client if startup connected one, else None."""
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Event Helpers ---


def channel_name(event: str) -> str:
    settings = get_settings()
    return f"{settings.redis_events_channel_prefix}:{event}"


async def publish_event(redis: aioredis.Redis, event: str, payload: dict) -> int:
    """Publish ``payload`` as JSON on the event's channel. Returns subscriber count."""
    return await redis.publish(channel_name(event), json.dumps(payload, default=str))
