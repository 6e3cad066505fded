"""Pydantic API schemas."""

from escrow_governance.schemas.common import ErrorResponse, HealthResponse
from escrow_governance.schemas.escrow import (
    EscrowResponse,
    EscrowStatusResponse,
    ExternalIdentifiers,
    LedgerEntryResponse,
    RecordConfirmationRequest,
    RecordDepositRequest,
    RecordDisbursementRequest,
    RecordMilestoneRequest,
)
from escrow_governance.schemas.governance import (
    AddCommentRequest,
    CastVoteRequest,
    ConfirmResolutionRequest,
    CreateProposalRequest,
    ProposalListResponse,
    ProposalResponse,
    ProposeSettlementRequest,
    ResolutionInstructionResponse,
)

__all__ = [
    "AddCommentRequest",
    "CastVoteRequest",
    "ConfirmResolutionRequest",
    "CreateProposalRequest",
    "ErrorResponse",
    "EscrowResponse",
    "EscrowStatusResponse",
    "ExternalIdentifiers",
    "HealthResponse",
    "LedgerEntryResponse",
    "ProposalListResponse",
    "ProposalResponse",
    "ProposeSettlementRequest",
    "RecordConfirmationRequest",
    "RecordDepositRequest",
    "RecordDisbursementRequest",
    "RecordMilestoneRequest",
    "ResolutionInstructionResponse",
]
