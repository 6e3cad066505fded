"""Pure voting rules: option sets, tallies, decision picking and read-model helpers.

Everything here is deterministic and free of I/O so the GovernanceService
can call it under an optimistic lock and the domain tests can call it directly.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from escrow_governance.domain.enums import (
    ProposalCategory,
    ProposalStatus,
    ProposalType,
    VoteChoice,
)
from escrow_governance.domain.exceptions import InvalidChoiceError

# Order matters: ties on the top count go to the earliest option in the list.
PLATFORM_OPTIONS: tuple[VoteChoice, ...] = (
    VoteChoice.APPROVE,
    VoteChoice.REJECT,
    VoteChoice.ABSTAIN,
)
DISPUTE_OPTIONS: tuple[VoteChoice, ...] = (
    VoteChoice.CLIENT_REFUND,
    VoteChoice.TALENT_REFUND,
    VoteChoice.SPLIT_FUNDS,
)

OPTION_LABELS: dict[VoteChoice, str] = {
    VoteChoice.APPROVE: "Approve",
    VoteChoice.REJECT: "Reject",
    VoteChoice.ABSTAIN: "Abstain",
    VoteChoice.CLIENT_REFUND: "Client Refund",
    VoteChoice.TALENT_REFUND: "Talent Refund",
    VoteChoice.SPLIT_FUNDS: "Split Funds",
}

VOTING_ENDED_LABEL = "Voting ended"


def allowed_options(proposal_type: ProposalType | str) -> tuple[VoteChoice, ...]:
    if ProposalType(proposal_type) is ProposalType.DISPUTE:
        return DISPUTE_OPTIONS
    return PLATFORM_OPTIONS


def default_category(proposal_type: ProposalType | str) -> ProposalCategory:
    if ProposalType(proposal_type) is ProposalType.DISPUTE:
        return ProposalCategory.DISPUTE
    return ProposalCategory.PLATFORM


def validate_choice(proposal_type: ProposalType | str, choice: str) -> VoteChoice:
    """Return ``choice`` as a VoteChoice if the proposal type accepts it.

    Raises:
        InvalidChoiceError: The choice is unknown or belongs to the other proposal type.
    """
    options = allowed_options(proposal_type)
    allowed = [option.value for option in options]
    if choice not in allowed:
        raise InvalidChoiceError(choice, allowed)
    return VoteChoice(choice)


def compute_tallies(
    proposal_type: ProposalType | str,
    choices: Iterable[str],
) -> dict[str, int]:
    """Count votes per allowed option, plus ``total``.

    Every allowed option is present in the result, even with zero votes.
    """
    options = allowed_options(proposal_type)
    tallies: dict[str, int] = {option.value: 0 for option in options}
    total = 0
    for choice in choices:
        if choice in tallies:
            tallies[choice] += 1
        total += 1
    tallies["total"] = total
    return tallies


def pick_decision(
    proposal_type: ProposalType | str,
    tallies: dict[str, int],
) -> VoteChoice | None:
    """Pick the option with the highest count.

    Ties go to the option listed first in the type's option set. When no
    option received a vote there is no decision.
    """
    best: VoteChoice | None = None
    best_count = 0
    for option in allowed_options(proposal_type):
        count = tallies.get(option.value, 0)
        if count > best_count:
            best, best_count = option, count
    return best


def status_after_voting(
    proposal_type: ProposalType | str,
    decision: VoteChoice | None,
) -> ProposalStatus:
    """Status a proposal takes once its voting window closes."""
    if decision is None:
        return ProposalStatus.REJECTED
    if ProposalType(proposal_type) is ProposalType.DISPUTE:
        return ProposalStatus.AWAITING_RESOLUTION
    if decision is VoteChoice.APPROVE:
        return ProposalStatus.PASSED
    return ProposalStatus.REJECTED


def voting_window(starts_at: datetime, duration_days: int) -> tuple[datetime, datetime]:
    return starts_at, starts_at + timedelta(days=duration_days)


def is_voting_open(status: ProposalStatus | str, ends_at: datetime, now: datetime) -> bool:
    return ProposalStatus(status) is ProposalStatus.VOTING and now <= ends_at


def is_expired(auto_finalized: bool, ends_at: datetime, now: datetime) -> bool:
    """True when the lazy finalizer has work to do."""
    return not auto_finalized and now > ends_at


def time_remaining_ms(ends_at: datetime | None, now: datetime) -> int:
    if ends_at is None:
        return 0
    diff_ms = int((ends_at - now).total_seconds() * 1000)
    return max(diff_ms, 0)


def humanize_remaining(milliseconds: int) -> str:
    total_seconds = milliseconds // 1000
    if total_seconds <= 0:
        return VOTING_ENDED_LABEL

    days = total_seconds // (24 * 3600)
    hours = (total_seconds % (24 * 3600)) // 3600
    minutes = (total_seconds % 3600) // 60

    if days > 0:
        return f"{days}d {hours}h remaining"
    if hours > 0:
        return f"{hours}h {minutes}m remaining"
    return f"{minutes}m remaining"


def participation_rate(total_votes: int, eligible_voters: int) -> float:
    """Percentage of eligible voters who voted, rounded to two places."""
    if eligible_voters <= 0:
        return 0.0
    rate = Decimal(total_votes * 100) / Decimal(eligible_voters)
    return float(rate.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
