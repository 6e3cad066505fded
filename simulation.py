#!/usr/bin/env python3
"""Escrow & Dispute Governance Engine: End-to-End Simulation.

Simulates three scenarios between a ClientBot, a TalentBot and a handful of
DAO members:

    Scenario 1: Happy Path
        - Client deposits $200 -> talent starts work
        - Client releases $50 early -> talent completes
        - Client confirms delivery -> remaining $150 released, CONFIRMED

    Scenario 2: Dispute Decided by Vote
        - Client deposits $100 -> talent starts work -> client opens a dispute
        - DAO members vote (split_funds wins) -> voting window closes
        - Payout instruction: 90% cap split 45/45 -> mediator confirms payout

    Scenario 3: Dispute Settled by Agreement
        - A mediator proposes $30 talent / $50 client
        - Both parties approve -> voting ends immediately
        - Payout instruction uses the agreed amounts

The marketplace tables (engagements, member profiles) are seeded directly, and
Redis is not required: notifications are only logged.

Usage:
    # Option A: With Docker (PostgreSQL):
    docker compose up -d
    uv run python simulation.py

    # Option B: Without Docker (SQLite in-memory):
    uv run python simulation.py --sqlite

    # Run a specific scenario:
    uv run python simulation.py --sqlite --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from escrow_governance.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False, env="simulation")
logger = get_logger("simulation")

# Module-level state
_sqlite_engine = None
_sqlite_session_factory = None


class SimulationClock:
    """Clock the simulation can fast-forward past a voting window."""

    def __init__(self) -> None:
        self._offset = timedelta()

    def now(self) -> datetime:
        return datetime.now(UTC) + self._offset

    def fast_forward(self, **delta: float) -> None:
        self._offset += timedelta(**delta)


clock = SimulationClock()


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False):
    """Initialize database engine and create tables."""
    global _sqlite_engine, _sqlite_session_factory

    if use_sqlite:
        from escrow_governance.infrastructure.database.engine import (
            build_engine,
            build_session_factory,
        )
        from escrow_governance.infrastructure.database.orm_models import Base

        _sqlite_engine = build_engine("sqlite+aiosqlite:///:memory:")
        _sqlite_session_factory = build_session_factory(_sqlite_engine)
        async with _sqlite_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.sqlite_initialized")
    else:
        from escrow_governance.infrastructure.database.engine import init_db
        await init_db()


async def get_session():
    """Get a fresh database session."""
    if _sqlite_session_factory is not None:
        return _sqlite_session_factory()

    from escrow_governance.infrastructure.database.engine import get_session_factory
    factory = get_session_factory()
    return factory()


async def shutdown_database():
    """Close database connections."""
    global _sqlite_engine, _sqlite_session_factory

    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None
        _sqlite_session_factory = None
    else:
        from escrow_governance.infrastructure.database.engine import close_db
        await close_db()


async def seed_marketplace(session: Any, engagement_id: str, members: dict[str, tuple]) -> None:
    """Insert the engagement and member rows the marketplace would normally own.

    ``members`` maps user id to ``(wallet_address, activity_points)``.
    """
    from escrow_governance.infrastructure.database.orm_models import (
        EngagementRecord,
        MemberProfile,
    )

    session.add(
        EngagementRecord(
            id=engagement_id,
            client_id="client-bot",
            talent_id="talent-bot",
            linked_work_id=f"job-{engagement_id[-4:]}",
            linked_work_kind="Job",
        )
    )
    for user_id, (wallet, points) in members.items():
        if await session.get(MemberProfile, user_id) is None:
            session.add(
                MemberProfile(user_id=user_id, wallet_address=wallet, activity_points=points)
            )
    await session.commit()


def services(session: Any):
    """Escrow and governance services wired to the production adapters."""
    from escrow_governance.config import get_settings
    from escrow_governance.infrastructure.collaborators import build_collaborators
    from escrow_governance.services.escrow_service import EscrowWorkflowService
    from escrow_governance.services.governance_service import GovernanceService

    settings = get_settings()
    collaborators = build_collaborators(session, None, settings)
    return (
        EscrowWorkflowService(session, collaborators, settings=settings, clock=clock),
        GovernanceService(session, collaborators, settings=settings, clock=clock),
    )


def tx() -> str:
    """A fresh fake transaction hash."""
    return "0x" + uuid.uuid4().hex + uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Bot Agents
# ---------------------------------------------------------------------------
@dataclass
class ClientBot:
    """Simulated client that funds, releases and confirms the escrow."""

    user_id: str = "client-bot"
    wallet: str = "0x" + "c" * 40

    async def deposit(self, session: Any, engagement_id: str, amount_usd: Decimal) -> None:
        escrow, _ = services(session)
        ledger = await escrow.record_deposit(
            engagement_id=engagement_id,
            caller_id=self.user_id,
            tx_hash=tx(),
            from_address=self.wallet,
            amount_usd=amount_usd,
            amount_crypto=amount_usd / Decimal("2000"),
        )
        logger.info("🔵 CLIENT: Escrow funded", engagement_id=engagement_id, usd=str(amount_usd))
        print(f"  💰 Deposited ${amount_usd} -> state: {ledger.workflow_state}")

    async def release(self, session: Any, engagement_id: str, amount_usd: Decimal) -> None:
        escrow, _ = services(session)
        ledger = await escrow.record_disbursement(
            engagement_id, self.user_id, tx(), self.wallet, amount_usd
        )
        print(f"  💸 Released ${amount_usd} early -> remaining: ${ledger.remaining_usd}")

    async def confirm(self, session: Any, engagement_id: str) -> None:
        escrow, _ = services(session)
        ledger = await escrow.record_confirmation(engagement_id, self.user_id, tx(), self.wallet)
        print(
            f"  ✅ Delivery confirmed -> ${ledger.confirmation.amount_usd} released, "
            f"state: {ledger.workflow_state}"
        )

    async def open_dispute(self, session: Any, engagement_id: str) -> uuid.UUID:
        from escrow_governance.domain.enums import ProposalType

        _, governance = services(session)
        proposal = await governance.create_proposal(
            proposer_id=self.user_id,
            title="Deliverable never arrived",
            description="Work started but nothing was delivered before the deadline.",
            proposal_type=ProposalType.DISPUTE,
            engagement_id=engagement_id,
            issue_summary="No delivery",
            client_narrative="I funded the escrow and heard nothing back.",
        )
        print(f"  ⚖️  Dispute opened: {proposal.id} (voting until {proposal.ends_at:%Y-%m-%d})")
        return proposal.id


@dataclass
class TalentBot:
    """Simulated talent that starts and completes the work."""

    user_id: str = "talent-bot"
    wallet: str = "0x" + "7" * 40

    async def start(self, session: Any, engagement_id: str) -> None:
        escrow, _ = services(session)
        ledger = await escrow.record_work_started(engagement_id, self.user_id, tx(), self.wallet)
        print(f"  🛠️  Work started -> state: {ledger.workflow_state}")

    async def complete(self, session: Any, engagement_id: str) -> None:
        escrow, _ = services(session)
        ledger = await escrow.record_completion(engagement_id, self.user_id, tx(), self.wallet)
        print(f"  📦 Work completed -> state: {ledger.workflow_state}")


@dataclass
class DaoMembers:
    """Independent members who vote on, settle and resolve disputes."""

    voters: list[str] = field(default_factory=lambda: ["member-a", "member-b", "member-c"])
    mediator: str = "mediator"

    def profiles(self) -> dict[str, tuple]:
        rows = {voter: (None, 15) for voter in self.voters}
        rows[self.mediator] = (None, 50)
        return rows

    async def vote(self, session: Any, proposal_id: uuid.UUID, choices: list[str]) -> None:
        _, governance = services(session)
        for voter, choice in zip(self.voters, choices, strict=False):
            proposal = await governance.admit_vote(proposal_id, voter, choice)
            print(f"  🗳️  {voter} voted {choice} -> tallies: {proposal.vote_tallies}")

    async def resolve(self, session: Any, proposal_id: uuid.UUID) -> None:
        _, governance = services(session)
        instruction = await governance.compute_resolution(proposal_id)
        print_instruction(instruction)
        proposal = await governance.confirm_resolution(proposal_id, self.mediator, tx_hash=tx())
        summary = proposal.resolution_summary or proposal.outcome
        print(f"  🏁 Resolved by {proposal.resolved_by}: {summary}")


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------
def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


def print_instruction(instruction: Any) -> None:
    """Pretty-print a payout instruction."""
    print("  📋 Payout instruction:")
    print(f"     outcome: {instruction.outcome} (by agreement: {instruction.settled_by_agreement})")
    print(f"     remaining: ${instruction.remaining_usd}, cap: ${instruction.cap_usd}")
    print(
        f"     client -> {instruction.client_wallet[:10]}...: "
        f"${instruction.client_amount_usd} ({instruction.client_amount_crypto})"
    )
    print(
        f"     talent -> {instruction.talent_wallet[:10]}...: "
        f"${instruction.talent_amount_usd} ({instruction.talent_amount_crypto})"
    )
    for note in instruction.notes:
        print(f"     note: {note}")


async def print_ledger(session: Any, engagement_id: str) -> None:
    """Print every transaction recorded against an engagement."""
    escrow, _ = services(session)
    snapshot = await escrow.get_snapshot(engagement_id)
    print("\n  📜 Ledger:")
    if snapshot.ledger is not None:
        for entry in snapshot.ledger.entries:
            amount = f"${entry.amount_usd}" if entry.amount_usd is not None else "-"
            print(f"    {entry.sequence}. [{entry.kind}] {amount} tx={entry.tx_hash[:14]}...")
    print(f"  State: {snapshot.workflow_state}, remaining: ${snapshot.remaining_usd}\n")


def new_engagement_id() -> str:
    return f"eng-{uuid.uuid4().hex[:8]}"


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    print("\n" + "=" * 70)
    print("  SCENARIO 1: Happy Path (deposit -> work -> confirm)")
    print("=" * 70)

    client, talent, dao = ClientBot(), TalentBot(), DaoMembers()
    engagement_id = new_engagement_id()

    async with await get_session() as session:
        await seed_marketplace(session, engagement_id, {
            client.user_id: (client.wallet, 20),
            talent.user_id: (talent.wallet, 20),
            **dao.profiles(),
        })

        section("Step 1: Funding and kickoff")
        await client.deposit(session, engagement_id, Decimal("200"))
        await talent.start(session, engagement_id)

        section("Step 2: Early partial release")
        await client.release(session, engagement_id, Decimal("50"))

        section("Step 3: Delivery")
        await talent.complete(session, engagement_id)
        await client.confirm(session, engagement_id)

        await print_ledger(session, engagement_id)


# ===========================================================================
# Scenario 2: Dispute decided by vote
# ===========================================================================
async def scenario_2_dispute_vote() -> None:
    print("\n" + "=" * 70)
    print("  SCENARIO 2: Dispute Decided by DAO Vote")
    print("=" * 70)

    client, talent, dao = ClientBot(), TalentBot(), DaoMembers()
    engagement_id = new_engagement_id()

    async with await get_session() as session:
        await seed_marketplace(session, engagement_id, {
            client.user_id: (client.wallet, 20),
            talent.user_id: (talent.wallet, 20),
            **dao.profiles(),
        })

        section("Step 1: Funding and kickoff")
        await client.deposit(session, engagement_id, Decimal("100"))
        await talent.start(session, engagement_id)

        section("Step 2: Client raises a dispute")
        proposal_id = await client.open_dispute(session, engagement_id)

        section("Step 3: DAO vote")
        await dao.vote(session, proposal_id, ["split_funds", "split_funds", "client_refund"])

        section("Step 4: Voting window closes")
        clock.fast_forward(days=6)
        _, governance = services(session)
        proposal = await governance.get_proposal(proposal_id)
        print(f"  ⏱️  Finalized: decision={proposal.final_decision}, status={proposal.status}")

        section("Step 5: Payout")
        await dao.resolve(session, proposal_id)

        await print_ledger(session, engagement_id)


# ===========================================================================
# Scenario 3: Dispute settled by agreement
# ===========================================================================
async def scenario_3_settlement() -> None:
    print("\n" + "=" * 70)
    print("  SCENARIO 3: Dispute Settled by Mutual Agreement")
    print("=" * 70)

    client, talent, dao = ClientBot(), TalentBot(), DaoMembers()
    engagement_id = new_engagement_id()

    async with await get_session() as session:
        await seed_marketplace(session, engagement_id, {
            client.user_id: (client.wallet, 20),
            talent.user_id: (talent.wallet, 20),
            **dao.profiles(),
        })

        section("Step 1: Funding, kickoff and dispute")
        await client.deposit(session, engagement_id, Decimal("100"))
        await talent.start(session, engagement_id)
        proposal_id = await client.open_dispute(session, engagement_id)

        section("Step 2: Mediator proposes a settlement")
        _, governance = services(session)
        proposal = await governance.propose_settlement(
            proposal_id,
            dao.mediator,
            talent_amount_usd=Decimal("30"),
            client_amount_usd=Decimal("50"),
        )
        print(
            f"  🤝 Proposed: talent ${proposal.settlement.talent_amount_usd}, "
            f"client ${proposal.settlement.client_amount_usd}"
        )

        section("Step 3: Both parties approve")
        await governance.approve_settlement(proposal_id, client.user_id)
        proposal = await governance.approve_settlement(proposal_id, talent.user_id)
        print(f"  ✍️  Both approved -> status: {proposal.status}")

        section("Step 4: Payout")
        await dao.resolve(session, proposal_id)

        await print_ledger(session, engagement_id)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_dispute_vote,
    3: scenario_3_settlement,
}


async def run_all(use_sqlite: bool = False) -> None:
    """Run all scenarios sequentially."""
    await init_database(use_sqlite=use_sqlite)

    try:
        print("\n" + "=" * 70)
        print("  ESCROW & DISPUTE GOVERNANCE ENGINE: SIMULATION")
        db_type = "SQLite (in-memory)" if use_sqlite else "PostgreSQL"
        print(f"  Database: {db_type}")
        print("=" * 70 + "\n")

        for scenario in SCENARIOS.values():
            await scenario()

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")

    finally:
        await shutdown_database()


async def run_scenario(num: int, use_sqlite: bool = False) -> None:
    """Run a specific scenario."""
    await init_database(use_sqlite=use_sqlite)

    try:
        if num not in SCENARIOS:
            print(f"Unknown scenario {num}. Available: 1, 2, 3")
            return
        await SCENARIOS[num]()
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Escrow & Dispute Governance Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of PostgreSQL (no Docker needed).",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all(use_sqlite=args.sqlite))
    else:
        asyncio.run(run_scenario(args.scenario, use_sqlite=args.sqlite))
