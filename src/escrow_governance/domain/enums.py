"""Domain enumerations for the escrow & governance engine.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class WorkflowState(enum.StrEnum):
    """Lifecycle stages of an engagement's escrow.

    Transitions are enforced by the WorkflowStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    OFFERED = "offered"
    DEPOSIT = "deposit"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CONFIRMED = "confirmed"


class ParticipantRole(enum.StrEnum):
    """Role a caller holds on an engagement."""

    CLIENT = "client"
    TALENT = "talent"


class LinkedWorkKind(enum.StrEnum):
    """Kind of marketplace item an engagement is attached to."""

    JOB = "Job"
    GIG = "Gig"
    NONE = "None"


class LedgerEntryKind(enum.StrEnum):
    """Types of escrow ledger entries.

    Every entry is anchored to an external transaction hash that is unique
    across the whole ledger table.
    """

    DEPOSIT = "deposit"
    WORK_STARTED = "work_started"
    COMPLETION = "completion"
    DISBURSEMENT = "disbursement"
    CONFIRMATION = "confirmation"


class ProposalType(enum.StrEnum):
    PLATFORM = "platform"
    DISPUTE = "dispute"


class ProposalCategory(enum.StrEnum):
    PLATFORM = "platform"
    FEATURE = "feature"
    POLICY = "policy"
    DISPUTE = "dispute"
    OTHER = "other"


class ProposalStatus(enum.StrEnum):
    """Lifecycle states of a proposal.

    voting -> (passed | rejected | awaiting_resolution) -> resolved
    """

    VOTING = "voting"
    PASSED = "passed"
    REJECTED = "rejected"
    AWAITING_RESOLUTION = "awaiting_resolution"
    RESOLVED = "resolved"


class VoteChoice(enum.StrEnum):
    """Every option a DAO member can vote for.

    Which subset is valid depends on the proposal type, see
    domain/governance_rules.py.
    """

    APPROVE = "approve"
    REJECT = "reject"
    ABSTAIN = "abstain"
    CLIENT_REFUND = "client_refund"
    TALENT_REFUND = "talent_refund"
    SPLIT_FUNDS = "split_funds"


class DaoStat(enum.StrEnum):
    """Per-member participation counters kept by the marketplace."""

    PROPOSALS_SUBMITTED = "proposals_submitted"
    DISPUTES_RAISED = "disputes_raised"
    VOTES_CAST = "votes_cast"
    COMMENTS_POSTED = "comments_posted"
    DISPUTES_RESOLVED = "disputes_resolved"
