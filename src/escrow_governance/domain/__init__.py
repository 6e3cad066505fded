"""Domain layer: pure business logic with zero framework dependencies."""

from escrow_governance.domain.enums import (
    LedgerEntryKind,
    ParticipantRole,
    ProposalStatus,
    ProposalType,
    VoteChoice,
    WorkflowState,
)
from escrow_governance.domain.exceptions import (
    EscrowGovernanceError,
    InvalidStateError,
    NotAuthorizedError,
)
from escrow_governance.domain.ports import (
    Collaborators,
    Engagement,
    ResolutionInstruction,
)
from escrow_governance.domain.state_machine import (
    ProposalStateMachine,
    WorkflowStateMachine,
    authorize_transition,
)

__all__ = [
    "LedgerEntryKind",
    "ParticipantRole",
    "ProposalStatus",
    "ProposalType",
    "VoteChoice",
    "WorkflowState",
    "EscrowGovernanceError",
    "InvalidStateError",
    "NotAuthorizedError",
    "Collaborators",
    "Engagement",
    "ResolutionInstruction",
    "ProposalStateMachine",
    "WorkflowStateMachine",
    "authorize_transition",
]
