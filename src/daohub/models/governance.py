"""Governance data models.

Every record is keyed by its identity tuple in the shared StateStore:
- Organization: org_id
- GovernanceSettings: org_id
- Member: (org_id, account)
- Proposal: (org_id, proposal_id)
- Vote: (org_id, proposal_id, account)
- Treasury: org_id

Records never hold live references to one another. A Proposal knows its
organization only through org_id.

Timestamps are integers in the ambient time/height unit supplied by the
hosting environment.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


BASIS_POINTS = 10_000


class ProposalStatus(str, enum.Enum):
    """Proposal lifecycle state.

    ACTIVE is the only non-terminal state. Transition happens exactly once.
    """
    ACTIVE = "active"
    PASSED = "passed"
    REJECTED = "rejected"


class VoteDirection(str, enum.Enum):
    """A voter's choice on a proposal."""
    FOR = "for"
    AGAINST = "against"


@dataclass
class Organization:
    """An organization in the registry.

    All fields except ``active`` are fixed at creation. No entry point
    toggles ``active``, so every existing organization reads as active.
    """
    org_id: int
    name: str
    description: str
    creator: str
    created_at: int
    governance_token: str
    membership_threshold: int
    active: bool = True


@dataclass
class GovernanceSettings:
    """Per-organization tunables. Replaced in full, never patched.

    Invariants:
    - voting_period > 0
    - 0 <= quorum_bp <= 10000
    - 0 <= majority_bp <= 10000
    """
    org_id: int
    voting_period: int
    quorum_bp: int
    majority_bp: int
    proposal_threshold: int

    def __post_init__(self) -> None:
        if self.voting_period <= 0:
            raise ValueError("voting_period must be > 0")
        for label, value in (
            ("quorum_bp", self.quorum_bp),
            ("majority_bp", self.majority_bp),
        ):
            if not 0 <= value <= BASIS_POINTS:
                raise ValueError(f"{label} must be within [0, {BASIS_POINTS}]")
        if self.proposal_threshold < 0:
            raise ValueError("proposal_threshold must be >= 0")


@dataclass(frozen=True)
class Member:
    """Admission record for (org_id, account).

    Frozen: membership is never updated after insert. Voting power is
    fixed at join time.
    """
    org_id: int
    account: str
    joined_at: int
    voting_power: int
    is_admin: bool = False
    active: bool = True


@dataclass
class Proposal:
    """A proposal within one organization.

    Invariant: total_votes == votes_for + votes_against.
    Only tallies change while ACTIVE; status changes once, at finalization.
    """
    org_id: int
    proposal_id: int
    title: str
    description: str
    proposer: str
    created_at: int
    voting_ends_at: int
    status: ProposalStatus = ProposalStatus.ACTIVE
    votes_for: int = 0
    votes_against: int = 0
    total_votes: int = 0

    @property
    def is_open(self) -> bool:
        return self.status == ProposalStatus.ACTIVE


@dataclass(frozen=True)
class Vote:
    """A single weighted vote. Write-once."""
    org_id: int
    proposal_id: int
    voter: str
    direction: VoteDirection
    weight: int
    cast_at: int


@dataclass
class Treasury:
    """Custodial balance of one organization. Never negative."""
    org_id: int
    balance: int = 0
    last_updated: int = 0
