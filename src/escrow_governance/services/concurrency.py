"""Optimistic-concurrency unit of work.

Each aggregate row carries a version counter. A write whose version no longer
matches (another request committed first) raises StaleDataError at flush; a
racing insert of the same unique key raises IntegrityError. Either way the
session is rolled back and the whole operation re-runs from a fresh read, so
its guards see the winner's state. Retries are driven by tenacity.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from escrow_governance.domain.exceptions import ConcurrentModificationError
from escrow_governance.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

T = TypeVar("T")

CONFLICT_ERRORS = (StaleDataError, IntegrityError)


async def run_unit_of_work(
    session: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    entity: str,
    entity_id: str,
    max_attempts: int,
) -> T:
    """Run ``operation`` and commit, retrying from scratch on a write conflict.

    Domain errors raised by ``operation`` roll the session back and propagate
    immediately; only conflicts are retried.

    Raises:
        ConcurrentModificationError: Every attempt lost the race.
    """
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=0.01, max=0.2),
            retry=retry_if_exception_type(CONFLICT_ERRORS),
        ):
            with attempt:
                try:
                    result = await operation()
                    await session.commit()
                except CONFLICT_ERRORS as err:
                    await session.rollback()
                    logger.warning(
                        "concurrency.write_conflict",
                        entity=entity,
                        entity_id=entity_id,
                        attempt=attempt.retry_state.attempt_number,
                        error=type(err).__name__,
                    )
                    raise
                except Exception:
                    await session.rollback()
                    raise
    except RetryError as err:
        logger.error(
            "concurrency.retries_exhausted",
            entity=entity,
            entity_id=entity_id,
            attempts=max_attempts,
        )
        raise ConcurrentModificationError(entity, entity_id, max_attempts) from err
    return result
