"""Proposal state machine - enforces the one-way lifecycle.

Transitions are fail-closed: any transition not explicitly allowed is
rejected. ACTIVE is the only source state, so a finalized proposal can
never be re-evaluated.
"""

from __future__ import annotations

from dataclasses import replace

from daohub.models.governance import Proposal, ProposalStatus


# Legal transitions: (from_status, to_status)
_TRANSITIONS: set[tuple[ProposalStatus, ProposalStatus]] = {
    (ProposalStatus.ACTIVE, ProposalStatus.PASSED),
    (ProposalStatus.ACTIVE, ProposalStatus.REJECTED),
}


class TransitionError(Exception):
    """Raised when a status transition is not allowed."""


class ProposalStateMachine:
    """Validates and applies proposal status transitions."""

    @staticmethod
    def validate(proposal: Proposal, target: ProposalStatus) -> list[str]:
        """Return validation errors. Empty list means the move is legal."""
        errors: list[str] = []
        if (proposal.status, target) not in _TRANSITIONS:
            errors.append(
                f"Illegal transition for proposal "
                f"{proposal.org_id}/{proposal.proposal_id}: "
                f"{proposal.status.value} -> {target.value}"
            )
        if proposal.total_votes != proposal.votes_for + proposal.votes_against:
            errors.append(
                f"Tally mismatch for proposal "
                f"{proposal.org_id}/{proposal.proposal_id}: "
                f"{proposal.votes_for} + {proposal.votes_against} "
                f"!= {proposal.total_votes}"
            )
        return errors

    @classmethod
    def apply(cls, proposal: Proposal, target: ProposalStatus) -> Proposal:
        """Return ``proposal`` moved to ``target``, or raise TransitionError.

        The input record is left untouched.
        """
        errors = cls.validate(proposal, target)
        if errors:
            raise TransitionError("; ".join(errors))
        return replace(proposal, status=target)
