"""Shared test fixtures for the escrow & governance test suite.

Provides:
    - A throwaway SQLite database per test (aiosqlite)
    - In-memory doubles for every collaborator port
    - A frozen clock so voting windows are deterministic
    - Services wired to all of the above
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from escrow_governance.config import Settings
from escrow_governance.domain.enums import LinkedWorkKind
from escrow_governance.domain.ports import Collaborators, Engagement
from escrow_governance.infrastructure.database.engine import build_engine, build_session_factory
from escrow_governance.infrastructure.database.orm_models import Base
from escrow_governance.services.escrow_service import EscrowWorkflowService
from escrow_governance.services.governance_service import GovernanceService

# ---------------------------------------------------------------------------
# In-memory doubles
# ---------------------------------------------------------------------------


class FrozenClock:
    """Clock that only moves when a test says so."""

    def __init__(self, start: datetime) -> None:
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, **delta: float) -> datetime:
        self._now = self._now + timedelta(**delta)
        return self._now


class InMemoryEngagements:
    def __init__(self, *engagements: Engagement) -> None:
        self._by_id = {e.engagement_id: e for e in engagements}

    async def get_engagement(self, engagement_id: str) -> Engagement | None:
        return self._by_id.get(engagement_id)


class InMemoryWallets:
    def __init__(self, addresses: dict[str, str]) -> None:
        self.addresses = dict(addresses)

    async def get_wallet_address(self, user_id: str) -> str | None:
        return self.addresses.get(user_id)


class PointsEligibility:
    """Activity-point thresholds over a plain dict of member points."""

    def __init__(self, points: dict[str, int], min_vote: int = 9, min_propose: int = 10) -> None:
        self.points = dict(points)
        self.min_vote = min_vote
        self.min_propose = min_propose

    async def can_vote(self, user_id: str) -> bool:
        return self.points.get(user_id, 0) >= self.min_vote

    async def can_propose(self, user_id: str) -> bool:
        return self.points.get(user_id, 0) >= self.min_propose

    async def count_eligible_voters(self) -> int:
        return sum(1 for p in self.points.values() if p >= self.min_vote)


class FixedRate:
    def __init__(self, price: Decimal) -> None:
        self.price = price

    async def crypto_price_usd(self) -> Decimal:
        return self.price


class RecordingNotifier:
    """Collects every notification; can be told to fail to exercise best-effort paths."""

    def __init__(self) -> None:
        self.events: list[tuple] = []
        self.fail = False

    async def _record(self, *event: object) -> None:
        if self.fail:
            raise RuntimeError("notification transport down")
        self.events.append(event)

    async def state_changed(self, engagement_id, new_state) -> None:  # noqa: ANN001
        await self._record("state_changed", engagement_id, str(new_state))

    async def proposal_updated(self, proposal_id: str) -> None:
        await self._record("proposal_updated", proposal_id)

    async def work_completed(self, engagement: Engagement) -> None:
        await self._record("work_completed", engagement.engagement_id, engagement.linked_work_id)

    async def activity_reward(self, user_id: str, points: int, reason: str) -> None:
        await self._record("activity_reward", user_id, points, reason)

    async def dao_stat(self, user_id: str, stat) -> None:  # noqa: ANN001
        await self._record("dao_stat", user_id, str(stat))

    def of_kind(self, kind: str) -> list[tuple]:
        return [e for e in self.events if e[0] == kind]


# ---------------------------------------------------------------------------
# Domain Fixtures
# ---------------------------------------------------------------------------

START = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        app_env="development",
        database_url="sqlite+aiosqlite://",
        min_deposit_usd=Decimal("0"),
        voting_duration_days=5,
        min_vote_activity_points=9,
        min_proposal_activity_points=10,
        vote_activity_reward=5,
        completion_activity_reward=10,
        settlement_percentage=Decimal("90"),
        min_payout_crypto=Decimal("0.0001"),
        fallback_crypto_price_usd=Decimal("3000"),
        max_conflict_retries=3,
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START)


@pytest.fixture
def engagement() -> Engagement:
    """eng-1: client-1 hired talent-1 through job-42."""
    return Engagement(
        engagement_id="eng-1",
        client_id="client-1",
        talent_id="talent-1",
        linked_work_id="job-42",
        linked_work_kind=LinkedWorkKind.JOB,
    )


@pytest.fixture
def wallets() -> InMemoryWallets:
    return InMemoryWallets(
        {
            "client-1": "0xabc0000000000000000000000000000000000001",
            "talent-1": "0xdef0000000000000000000000000000000000002",
        }
    )


@pytest.fixture
def eligibility() -> PointsEligibility:
    """Seven eligible voters; newbie is below every threshold."""
    return PointsEligibility(
        {
            "client-1": 20,
            "talent-1": 20,
            "voter-1": 15,
            "voter-2": 15,
            "voter-3": 15,
            "voter-4": 15,
            "mediator": 50,
            "newbie": 3,
        }
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def rates() -> FixedRate:
    return FixedRate(Decimal("2000"))


@pytest.fixture
def collaborators(
    engagement: Engagement,
    wallets: InMemoryWallets,
    eligibility: PointsEligibility,
    rates: FixedRate,
    notifier: RecordingNotifier,
) -> Collaborators:
    other = Engagement(engagement_id="eng-2", client_id="client-2", talent_id="talent-2")
    return Collaborators(
        engagements=InMemoryEngagements(engagement, other),
        wallets=wallets,
        eligibility=eligibility,
        rates=rates,
        notifier=notifier,
    )


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path):  # noqa: ANN001
    """A file-backed SQLite database so separate sessions really are separate."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'escrow.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):  # noqa: ANN001
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):  # noqa: ANN001
    async with session_factory() as session:
        yield session


@pytest.fixture
def escrow_service(session, collaborators, settings, clock) -> EscrowWorkflowService:  # noqa: ANN001
    return EscrowWorkflowService(session, collaborators, settings=settings, clock=clock)


@pytest.fixture
def governance_service(session, collaborators, settings, clock) -> GovernanceService:  # noqa: ANN001
    return GovernanceService(session, collaborators, settings=settings, clock=clock)


# ---------------------------------------------------------------------------
# API Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def app(session_factory, collaborators, settings, clock):  # noqa: ANN001, ANN201
    """The FastAPI app with the database, adapters and clock swapped for test doubles."""
    from escrow_governance.api.deps import (
        get_app_settings,
        get_clock,
        get_collaborators,
        get_db_session,
    )
    from escrow_governance.main import create_app

    async def override_session():  # noqa: ANN202
        async with session_factory() as session:
            yield session

    application = create_app()
    application.dependency_overrides[get_db_session] = override_session
    application.dependency_overrides[get_collaborators] = lambda: collaborators
    application.dependency_overrides[get_app_settings] = lambda: settings
    application.dependency_overrides[get_clock] = lambda: clock
    return application


@pytest_asyncio.fixture
async def client(app):  # noqa: ANN001
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
