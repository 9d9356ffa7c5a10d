"""Core data models for daohub."""

from daohub.models.governance import (
    BASIS_POINTS,
    GovernanceSettings,
    Member,
    Organization,
    Proposal,
    ProposalStatus,
    Treasury,
    Vote,
    VoteDirection,
)

__all__ = [
    "BASIS_POINTS",
    "GovernanceSettings",
    "Member",
    "Organization",
    "Proposal",
    "ProposalStatus",
    "Treasury",
    "Vote",
    "VoteDirection",
]
