"""Structural invariant checks over a StateStore snapshot.

Returns human-readable violations; an empty list means the store is
consistent. Used by the ``check-invariants`` CLI command and by tests
after randomised operation sequences.
"""

from __future__ import annotations

from daohub.models.governance import ProposalStatus, VoteDirection
from daohub.persistence.state_store import StateStore


def check_store(store: StateStore) -> list[str]:
    errors: list[str] = []

    # --- Organization registry ---
    for org_id, org in store.organizations.items():
        if org.org_id != org_id:
            errors.append(f"organization key {org_id} holds record {org.org_id}")
        if not 1 <= org_id < store.next_org_id:
            errors.append(
                f"organization {org_id} outside allocated range "
                f"[1, {store.next_org_id})"
            )
        if org_id not in store.settings:
            errors.append(f"organization {org_id} has no governance settings")
        if org_id not in store.treasuries:
            errors.append(f"organization {org_id} has no treasury")
        if org_id not in store.proposal_counters:
            errors.append(f"organization {org_id} has no proposal counter")
        creator = store.members.get((org_id, org.creator))
        if creator is None or not creator.is_admin:
            errors.append(f"organization {org_id} creator is not an administrator")

    # --- Membership ---
    for (org_id, account), member in store.members.items():
        if (member.org_id, member.account) != (org_id, account):
            errors.append(f"member key {(org_id, account)} holds mismatched record")
        if org_id not in store.organizations:
            errors.append(f"member {account} belongs to unknown organization {org_id}")
        if member.voting_power < 0:
            errors.append(f"member {org_id}/{account} has negative voting power")

    # --- Proposals and votes ---
    sums: dict[tuple[int, int], list[int]] = {}
    for (org_id, proposal_id, voter), vote in store.votes.items():
        if (org_id, proposal_id) not in store.proposals:
            errors.append(f"vote by {voter} on unknown proposal {org_id}/{proposal_id}")
            continue
        bucket = sums.setdefault((org_id, proposal_id), [0, 0])
        if vote.direction == VoteDirection.FOR:
            bucket[0] += vote.weight
        else:
            bucket[1] += vote.weight

    for (org_id, proposal_id), proposal in store.proposals.items():
        label = f"proposal {org_id}/{proposal_id}"
        if proposal.total_votes != proposal.votes_for + proposal.votes_against:
            errors.append(f"{label} total_votes != votes_for + votes_against")
        vote_for, vote_against = sums.get((org_id, proposal_id), [0, 0])
        if (vote_for, vote_against) != (proposal.votes_for, proposal.votes_against):
            errors.append(
                f"{label} tallies ({proposal.votes_for}, {proposal.votes_against}) "
                f"differ from vote records ({vote_for}, {vote_against})"
            )
        if proposal_id >= store.proposal_counters.get(org_id, 0):
            errors.append(f"{label} id not below the organization's counter")
        if proposal.voting_ends_at < proposal.created_at:
            errors.append(f"{label} deadline precedes creation")
        if proposal.status not in set(ProposalStatus):
            errors.append(f"{label} has unknown status {proposal.status!r}")

    # --- Treasury ---
    for org_id, treasury in store.treasuries.items():
        if treasury.balance < 0:
            errors.append(f"treasury {org_id} balance is negative")

    return errors
