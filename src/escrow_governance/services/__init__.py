"""Application services: use case orchestration."""

from escrow_governance.services.escrow_service import EscrowSnapshot, EscrowWorkflowService
from escrow_governance.services.governance_service import GovernanceService, ProposalView

__all__ = ["EscrowSnapshot", "EscrowWorkflowService", "GovernanceService", "ProposalView"]
