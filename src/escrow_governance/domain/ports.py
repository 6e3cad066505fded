"""Collaborator ports.

The engine owns only the escrow ledger and the proposals. Everything else
(engagement records, member profiles, the price oracle, notification
delivery) belongs to the outer marketplace and is reached through these
Protocols (structural subtyping), so adapters don't need to inherit from
a base class; they just need to match the shape.

The domain layer has ZERO imports from SQLAlchemy, Redis, or FastAPI.

Concrete adapters:
    - infrastructure/collaborators.py (SQL directories, Redis publisher, rate source)
    - tests/conftest.py               (in-memory doubles)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol, runtime_checkable

from escrow_governance.domain.enums import (
    DaoStat,
    LinkedWorkKind,
    ParticipantRole,
    VoteChoice,
    WorkflowState,
)


@dataclass(frozen=True)
class Engagement:
    """The client-talent relationship an escrow or dispute is scoped to.

    Attributes:
        engagement_id: Opaque id of the engagement (chat/contract) record.
        client_id: User id of the paying party.
        talent_id: User id of the party doing the work.
        linked_work_id: Id of the Job or Gig the engagement came from, if any.
        linked_work_kind: Whether ``linked_work_id`` points at a Job or a Gig.
    """

    engagement_id: str
    client_id: str
    talent_id: str
    linked_work_id: str | None = None
    linked_work_kind: LinkedWorkKind = LinkedWorkKind.NONE

    def role_of(self, user_id: str) -> ParticipantRole | None:
        if user_id == self.client_id:
            return ParticipantRole.CLIENT
        if user_id == self.talent_id:
            return ParticipantRole.TALENT
        return None


@dataclass(frozen=True)
class ResolutionInstruction:
    """Payout computed for a dispute, handed to an external payment executor.

    Attributes:
        proposal_id: The dispute proposal being settled.
        engagement_id: The escrowed engagement the funds come from.
        outcome: Winning option, or split_funds for a mutual settlement or a vote with no ballots.
        settled_by_agreement: True when the amounts come from a mutual settlement.
        client_wallet / talent_wallet: Destination addresses.
        client_amount_usd / talent_amount_usd: Amounts in USD before conversion.
        client_amount_crypto / talent_amount_crypto: Amounts the executor transfers.
        remaining_usd: Escrow balance left after disbursements.
        cap_usd: Share of ``remaining_usd`` eligible for a dispute payout.
        crypto_price_usd: Price used for the USD -> crypto conversion.
    """

    proposal_id: str
    engagement_id: str
    outcome: VoteChoice | None
    settled_by_agreement: bool
    client_wallet: str
    talent_wallet: str
    client_amount_usd: Decimal
    talent_amount_usd: Decimal
    client_amount_crypto: Decimal
    talent_amount_crypto: Decimal
    remaining_usd: Decimal
    cap_usd: Decimal
    crypto_price_usd: Decimal
    notes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Serialize for API responses and event payloads."""
        return {
            "proposal_id": self.proposal_id,
            "engagement_id": self.engagement_id,
            "outcome": self.outcome.value if self.outcome else None,
            "settled_by_agreement": self.settled_by_agreement,
            "client_wallet": self.client_wallet,
            "talent_wallet": self.talent_wallet,
            "client_amount_usd": str(self.client_amount_usd),
            "talent_amount_usd": str(self.talent_amount_usd),
            "client_amount_crypto": str(self.client_amount_crypto),
            "talent_amount_crypto": str(self.talent_amount_crypto),
            "remaining_usd": str(self.remaining_usd),
            "cap_usd": str(self.cap_usd),
            "crypto_price_usd": str(self.crypto_price_usd),
            "notes": list(self.notes),
        }


@runtime_checkable
class EngagementDirectory(Protocol):
    async def get_engagement(self, engagement_id: str) -> Engagement | None:
        """Look up the engagement, or None if it does not exist."""
        ...


@runtime_checkable
class WalletDirectory(Protocol):
    async def get_wallet_address(self, user_id: str) -> str | None:
        """Return the wallet the user registered on their profile, if any."""
        ...


@runtime_checkable
class EligibilityChecker(Protocol):
    """Standing checks for DAO participation (activity points in the marketplace)."""

    async def can_vote(self, user_id: str) -> bool: ...

    async def can_propose(self, user_id: str) -> bool: ...

    async def count_eligible_voters(self) -> int: ...


@runtime_checkable
class RateSource(Protocol):
    async def crypto_price_usd(self) -> Decimal:
        """Return the USD price of one unit of the settlement currency."""
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Broadcast hooks consumed by the outer marketplace.

    ``work_completed`` and ``activity_reward`` are the signals the marketplace
    uses to close the linked Job/Gig and credit activity points. ``dao_stat``
    bumps one of the member's participation counters.
    """

    async def state_changed(self, engagement_id: str, new_state: WorkflowState) -> None: ...

    async def proposal_updated(self, proposal_id: str) -> None: ...

    async def work_completed(self, engagement: Engagement) -> None: ...

    async def activity_reward(self, user_id: str, points: int, reason: str) -> None: ...

    async def dao_stat(self, user_id: str, stat: DaoStat) -> None: ...


@dataclass(frozen=True)
class Collaborators:
    """Bundle of the ports a service needs."""

    engagements: EngagementDirectory
    wallets: WalletDirectory
    eligibility: EligibilityChecker
    rates: RateSource
    notifier: NotificationSink
