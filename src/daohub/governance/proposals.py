"""Proposal Lifecycle & Vote Accounting.

Proposals move ACTIVE -> PASSED | REJECTED exactly once. While ACTIVE,
each accepted vote is recorded once per (organization, proposal, account)
and its weight is added to the matching tally in the same atomic unit.

Finalization rules (integer arithmetic throughout, floors on division):

    quorum_needed  = floor(reference_total_supply * quorum_bp / 10000)
    majority_needed = floor(total_votes * majority_bp / 10000)
    PASSED  iff total_votes >= quorum_needed and votes_for >= majority_needed
    REJECTED otherwise

Deadline rules:
- vote requires now < voting_ends_at
- finalize requires now >= voting_ends_at
Both failures share the VotingEnded error kind; the message says which.

Weights are locked at cast time. Nothing ever decrements or re-weights a
cast vote.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from daohub.config import DaoConfig
from daohub.context import CallContext
from daohub.errors import (
    AlreadyVoted,
    InsufficientBalance,
    InvalidParams,
    NotFound,
    VotingEnded,
)
from daohub.engine.arithmetic import basis_point_share, checked_add
from daohub.engine.state_machine import ProposalStateMachine
from daohub.governance.membership import MembershipLedger
from daohub.governance.org_registry import OrgRegistryEngine
from daohub.governance.settings import SettingsEngine
from daohub.models.governance import (
    BASIS_POINTS,
    Proposal,
    ProposalStatus,
    Vote,
    VoteDirection,
)
from daohub.persistence.state_store import StateStore


class ProposalEngine:
    """Creates proposals, records votes and finalizes outcomes.

    Usage:
        engine = ProposalEngine(store, registry, membership, settings, config)
        proposal = engine.create_proposal(ctx, org_id, "Title", "Body")
        engine.vote(ctx, org_id, proposal.proposal_id, VoteDirection.FOR)
        # ... after the deadline ...
        proposal = engine.finalize(ctx, org_id, proposal.proposal_id)
    """

    def __init__(
        self,
        store: StateStore,
        registry: OrgRegistryEngine,
        membership: MembershipLedger,
        settings: SettingsEngine,
        config: DaoConfig,
    ) -> None:
        self._store = store
        self._registry = registry
        self._membership = membership
        self._settings = settings
        self._config = config

    def create_proposal(
        self,
        ctx: CallContext,
        org_id: int,
        title: str,
        description: str,
    ) -> Proposal:
        """Create a proposal in ACTIVE status with zero tallies.

        The deadline is fixed from the settings in force at creation;
        later settings changes do not move it.

        Raises:
            NotFound: Organization or its settings missing.
            DaoInactive: Organization inactive.
            Unauthorized: Caller is not an active member.
            InsufficientBalance: Caller's voting power below the
                proposal threshold.
            InvalidParams: Empty title.
        """
        self._registry.require_active(org_id)
        settings = self._settings.require_settings(org_id)
        member = self._membership.require_member(org_id, ctx.caller)
        if member.voting_power < settings.proposal_threshold:
            raise InsufficientBalance(
                f"Voting power {member.voting_power} is below proposal "
                f"threshold {settings.proposal_threshold}"
            )
        if not title or not title.strip():
            raise InvalidParams("Proposal title cannot be empty")

        store = self._store
        with store.transaction():
            proposal_id = store.proposal_counters.get(org_id, 0)
            proposal = Proposal(
                org_id=org_id,
                proposal_id=proposal_id,
                title=title.strip(),
                description=description,
                proposer=ctx.caller,
                created_at=ctx.now,
                voting_ends_at=checked_add(ctx.now, settings.voting_period),
            )
            store.put("proposals", (org_id, proposal_id), proposal)
            store.put("proposal_counters", org_id, proposal_id + 1)
        return proposal

    def vote(
        self,
        ctx: CallContext,
        org_id: int,
        proposal_id: int,
        direction: VoteDirection,
    ) -> Vote:
        """Cast the caller's weighted vote.

        Raises:
            NotFound: Organization or proposal missing.
            DaoInactive: Organization inactive.
            Unauthorized: Caller is not an active member.
            InvalidParams: Proposal is no longer ACTIVE, or the direction
                is not a VoteDirection.
            VotingEnded: now >= voting_ends_at.
            AlreadyVoted: Caller already voted on this proposal.
            InsufficientBalance: Caller's voting power is zero.
        """
        self._registry.require_active(org_id)
        member = self._membership.require_member(org_id, ctx.caller)
        proposal = self._require_proposal(org_id, proposal_id)
        if not proposal.is_open:
            raise InvalidParams(
                f"Proposal {org_id}/{proposal_id} is not active "
                f"(status: {proposal.status.value})"
            )
        if ctx.now >= proposal.voting_ends_at:
            raise VotingEnded(
                f"Voting on proposal {org_id}/{proposal_id} ended at "
                f"{proposal.voting_ends_at}"
            )
        key = (org_id, proposal_id, ctx.caller)
        if key in self._store.votes:
            raise AlreadyVoted(
                f"Account {ctx.caller} has already voted on proposal "
                f"{org_id}/{proposal_id}"
            )
        if member.voting_power <= 0:
            raise InsufficientBalance(
                f"Account {ctx.caller} has no voting power in organization {org_id}"
            )
        if not isinstance(direction, VoteDirection):
            raise InvalidParams(f"Unknown vote direction: {direction!r}")

        weight = member.voting_power
        # Compute every new tally before writing so an overflow leaves
        # nothing half-applied.
        new_total = checked_add(proposal.total_votes, weight)
        if direction == VoteDirection.FOR:
            new_for, new_against = checked_add(proposal.votes_for, weight), proposal.votes_against
        else:
            new_for, new_against = proposal.votes_for, checked_add(proposal.votes_against, weight)

        vote = Vote(
            org_id=org_id,
            proposal_id=proposal_id,
            voter=ctx.caller,
            direction=direction,
            weight=weight,
            cast_at=ctx.now,
        )
        with self._store.transaction():
            self._store.put("votes", key, vote)
            self._store.put("proposals", (org_id, proposal_id), replace(
                proposal,
                votes_for=new_for,
                votes_against=new_against,
                total_votes=new_total,
            ))
        return vote

    def finalize(
        self,
        ctx: CallContext,
        org_id: int,
        proposal_id: int,
    ) -> Proposal:
        """Settle an ACTIVE proposal whose deadline has been reached.

        Anyone may finalize. A second call on the same proposal fails
        with InvalidParams and changes nothing.

        Raises:
            NotFound: Proposal or settings missing.
            InvalidParams: Proposal already PASSED or REJECTED.
            VotingEnded: Deadline not yet reached (voting has not ended).
        """
        proposal = self._require_proposal(org_id, proposal_id)
        settings = self._settings.require_settings(org_id)
        if not proposal.is_open:
            raise InvalidParams(
                f"Proposal {org_id}/{proposal_id} is already finalized "
                f"(status: {proposal.status.value})"
            )
        if ctx.now < proposal.voting_ends_at:
            raise VotingEnded(
                f"Voting on proposal {org_id}/{proposal_id} has not ended yet "
                f"(ends at {proposal.voting_ends_at}, now {ctx.now})"
            )

        target = self.evaluate_outcome(
            proposal, settings.quorum_bp, settings.majority_bp,
        )
        finalized = ProposalStateMachine.apply(proposal, target)
        with self._store.transaction():
            self._store.put("proposals", (org_id, proposal_id), finalized)
        return finalized

    def evaluate_outcome(
        self,
        proposal: Proposal,
        quorum_bp: int,
        majority_bp: int,
    ) -> ProposalStatus:
        """Pure quorum/majority evaluation; does not mutate."""
        quorum_needed = basis_point_share(
            self._config.reference_total_supply, quorum_bp, BASIS_POINTS,
        )
        majority_needed = basis_point_share(
            proposal.total_votes, majority_bp, BASIS_POINTS,
        )
        quorum_met = proposal.total_votes >= quorum_needed
        majority_met = proposal.votes_for >= majority_needed
        if quorum_met and majority_met:
            return ProposalStatus.PASSED
        return ProposalStatus.REJECTED

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_proposal(self, org_id: int, proposal_id: int) -> Optional[Proposal]:
        """A copy of the stored proposal; editing it changes nothing."""
        proposal = self._store.proposals.get((org_id, proposal_id))
        return replace(proposal) if proposal is not None else None

    def get_vote(self, org_id: int, proposal_id: int, voter: str) -> Optional[Vote]:
        return self._store.votes.get((org_id, proposal_id, voter))

    def list_proposals(
        self,
        org_id: int,
        status: Optional[ProposalStatus] = None,
    ) -> list[Proposal]:
        """Proposals of one organization in id order, optionally filtered."""
        proposals = [
            replace(p) for (oid, _), p in self._store.proposals.items()
            if oid == org_id
        ]
        if status is not None:
            proposals = [p for p in proposals if p.status == status]
        proposals.sort(key=lambda p: p.proposal_id)
        return proposals

    def list_votes(self, org_id: int, proposal_id: int) -> list[Vote]:
        """Votes on one proposal in cast order."""
        votes = [
            v for (oid, pid, _), v in self._store.votes.items()
            if oid == org_id and pid == proposal_id
        ]
        votes.sort(key=lambda v: (v.cast_at, v.voter))
        return votes

    def _require_proposal(self, org_id: int, proposal_id: int) -> Proposal:
        proposal = self._store.proposals.get((org_id, proposal_id))
        if proposal is None:
            raise NotFound(f"Proposal not found: {org_id}/{proposal_id}")
        return proposal
