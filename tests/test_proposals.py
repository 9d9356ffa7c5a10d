"""Tests for Proposal Lifecycle & Vote Accounting.

Proves invariants:
- proposal ids are dense per organization, starting at 0.
- votes_for + votes_against == total_votes, and each tally equals the sum
  of matching vote weights.
- At most one vote per (organization, proposal, account).
- Votes accepted only while ACTIVE and strictly before the deadline.
- Finalization only at or after the deadline, exactly once.
- Quorum/majority arithmetic floors, against the reference total supply.
- Tally overflow aborts the vote with nothing recorded.
"""

from __future__ import annotations

import pytest

from daohub.config import DaoConfig
from daohub.context import CallContext
from daohub.engine.arithmetic import UINT128_MAX
from daohub.errors import (
    AlreadyVoted,
    ArithmeticOverflow,
    DaoInactive,
    InsufficientBalance,
    InvalidParams,
    NotFound,
    Unauthorized,
    VotingEnded,
)
from daohub.governance.membership import MembershipLedger
from daohub.governance.org_registry import OrgRegistryEngine
from daohub.governance.proposals import ProposalEngine
from daohub.governance.settings import SettingsEngine
from daohub.models.governance import ProposalStatus, VoteDirection
from daohub.persistence.state_store import StateStore


def _ctx(caller: str, now: int) -> CallContext:
    return CallContext(caller=caller, now=now)


class _Harness:
    """One store with every governance engine wired over it."""

    def __init__(self, config: DaoConfig | None = None) -> None:
        config = config or DaoConfig.defaults()
        self.store = StateStore()
        self.registry = OrgRegistryEngine(self.store, config)
        self.membership = MembershipLedger(self.store, self.registry, config)
        self.settings = SettingsEngine(self.store, self.registry, self.membership)
        self.proposals = ProposalEngine(
            self.store, self.registry, self.membership, self.settings, config,
        )

    def guild(self) -> int:
        """alice creates (admin, power 0); bob joins directly; carol by proof."""
        org_id = self.registry.create_organization(
            _ctx("alice", 1), "Guild", "", "tok-1", 100,
        ).org_id
        self.membership.join_directly(_ctx("bob", 2), org_id)
        self.membership.join_with_token_proof(_ctx("carol", 3), org_id, 250)
        return org_id


@pytest.fixture
def h() -> _Harness:
    return _Harness()


@pytest.fixture
def org_id(h: _Harness) -> int:
    return h.guild()


class TestCreateProposal:
    def test_first_proposal(self, h: _Harness, org_id: int) -> None:
        proposal = h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        assert proposal.proposal_id == 0
        assert proposal.status == ProposalStatus.ACTIVE
        assert proposal.voting_ends_at == 1450
        assert proposal.created_at == 10
        assert proposal.proposer == "carol"
        assert (proposal.votes_for, proposal.votes_against, proposal.total_votes) == (0, 0, 0)
        assert h.store.proposal_counters[org_id] == 1

    def test_ids_dense_per_org(self, h: _Harness, org_id: int) -> None:
        other = h.registry.create_organization(_ctx("zed", 4), "Other", "", "tok", 1).org_id
        h.membership.join_directly(_ctx("bob", 5), other)
        ids = [h.proposals.create_proposal(_ctx("bob", 10 + i), org_id, f"P{i}", "").proposal_id
               for i in range(3)]
        assert ids == [0, 1, 2]
        assert h.proposals.create_proposal(_ctx("bob", 20), other, "X", "").proposal_id == 0

    def test_below_threshold(self, h: _Harness, org_id: int) -> None:
        with pytest.raises(InsufficientBalance):
            h.proposals.create_proposal(_ctx("alice", 10), org_id, "T", "D")
        assert h.store.proposal_counters[org_id] == 0

    def test_exactly_threshold(self, h: _Harness, org_id: int) -> None:
        h.membership.join_with_token_proof(_ctx("dave", 4), org_id, 100)
        assert h.proposals.create_proposal(_ctx("dave", 10), org_id, "T", "").proposal_id == 0

    def test_non_member(self, h: _Harness, org_id: int) -> None:
        with pytest.raises(Unauthorized):
            h.proposals.create_proposal(_ctx("stranger", 10), org_id, "T", "D")

    def test_empty_title(self, h: _Harness, org_id: int) -> None:
        with pytest.raises(InvalidParams):
            h.proposals.create_proposal(_ctx("bob", 10), org_id, "  ", "D")
        assert h.store.proposal_counters[org_id] == 0

    def test_unknown_org(self, h: _Harness) -> None:
        with pytest.raises(NotFound):
            h.proposals.create_proposal(_ctx("bob", 10), 9, "T", "D")

    def test_inactive_org(self, h: _Harness, org_id: int) -> None:
        h.store.organizations[org_id].active = False
        with pytest.raises(DaoInactive):
            h.proposals.create_proposal(_ctx("bob", 10), org_id, "T", "D")

    def test_deadline_fixed_at_creation(self, h: _Harness, org_id: int) -> None:
        proposal = h.proposals.create_proposal(_ctx("bob", 10), org_id, "T", "")
        h.settings.update_settings(_ctx("alice", 11), org_id, 5, 2000, 5000, 100)
        assert proposal.voting_ends_at == 1450
        later = h.proposals.create_proposal(_ctx("bob", 12), org_id, "T2", "")
        assert later.voting_ends_at == 17


class TestVote:
    def test_weighted_tallies(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        vote = h.proposals.vote(_ctx("bob", 11), org_id, 0, VoteDirection.FOR)
        h.proposals.vote(_ctx("carol", 12), org_id, 0, VoteDirection.AGAINST)
        proposal = h.proposals.get_proposal(org_id, 0)
        assert vote.weight == 1_000_000
        assert vote.cast_at == 11
        assert proposal.votes_for == 1_000_000
        assert proposal.votes_against == 250
        assert proposal.total_votes == 1_000_250

    def test_second_vote_rejected(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        h.proposals.vote(_ctx("bob", 11), org_id, 0, VoteDirection.FOR)
        with pytest.raises(AlreadyVoted):
            h.proposals.vote(_ctx("bob", 13), org_id, 0, VoteDirection.AGAINST)
        proposal = h.proposals.get_proposal(org_id, 0)
        assert (proposal.votes_for, proposal.votes_against) == (1_000_000, 0)
        assert h.proposals.get_vote(org_id, 0, "bob").direction == VoteDirection.FOR

    def test_zero_power_rejected(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        with pytest.raises(InsufficientBalance):
            h.proposals.vote(_ctx("alice", 11), org_id, 0, VoteDirection.FOR)
        assert h.proposals.get_vote(org_id, 0, "alice") is None

    def test_at_deadline_rejected(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        h.proposals.vote(_ctx("bob", 1449), org_id, 0, VoteDirection.FOR)
        with pytest.raises(VotingEnded):
            h.proposals.vote(_ctx("carol", 1450), org_id, 0, VoteDirection.FOR)

    def test_unknown_proposal(self, h: _Harness, org_id: int) -> None:
        with pytest.raises(NotFound):
            h.proposals.vote(_ctx("bob", 11), org_id, 5, VoteDirection.FOR)

    def test_non_member(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        with pytest.raises(Unauthorized):
            h.proposals.vote(_ctx("stranger", 11), org_id, 0, VoteDirection.FOR)

    def test_invalid_direction(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        with pytest.raises(InvalidParams):
            h.proposals.vote(_ctx("bob", 11), org_id, 0, "abstain")

    def test_finalized_proposal_rejects_votes(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        h.proposals.finalize(_ctx("anyone", 1450), org_id, 0)
        h.membership.join_directly(_ctx("dave", 1451), org_id)
        with pytest.raises(InvalidParams, match="not active"):
            h.proposals.vote(_ctx("dave", 1451), org_id, 0, VoteDirection.FOR)

    def test_tally_overflow_records_nothing(self, h: _Harness, org_id: int) -> None:
        h.membership.join_with_token_proof(_ctx("whale1", 4), org_id, UINT128_MAX)
        h.membership.join_with_token_proof(_ctx("whale2", 4), org_id, UINT128_MAX)
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        h.proposals.vote(_ctx("whale1", 11), org_id, 0, VoteDirection.FOR)
        with pytest.raises(ArithmeticOverflow):
            h.proposals.vote(_ctx("whale2", 12), org_id, 0, VoteDirection.FOR)
        proposal = h.proposals.get_proposal(org_id, 0)
        assert proposal.votes_for == UINT128_MAX
        assert proposal.total_votes == UINT128_MAX
        assert h.proposals.get_vote(org_id, 0, "whale2") is None

    def test_list_votes_in_cast_order(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        h.proposals.vote(_ctx("carol", 11), org_id, 0, VoteDirection.AGAINST)
        h.proposals.vote(_ctx("bob", 12), org_id, 0, VoteDirection.FOR)
        assert [v.voter for v in h.proposals.list_votes(org_id, 0)] == ["carol", "bob"]


class TestFinalize:
    def test_before_deadline_rejected(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        with pytest.raises(VotingEnded, match="not ended"):
            h.proposals.finalize(_ctx("anyone", 1449), org_id, 0)
        assert h.proposals.get_proposal(org_id, 0).status == ProposalStatus.ACTIVE

    def test_passes_with_quorum_and_majority(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        h.proposals.vote(_ctx("bob", 11), org_id, 0, VoteDirection.FOR)
        h.proposals.vote(_ctx("carol", 12), org_id, 0, VoteDirection.AGAINST)
        proposal = h.proposals.finalize(_ctx("anyone", 1450), org_id, 0)
        assert proposal.status == ProposalStatus.PASSED

    def test_second_finalize_rejected(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        h.proposals.finalize(_ctx("anyone", 1450), org_id, 0)
        with pytest.raises(InvalidParams, match="already finalized"):
            h.proposals.finalize(_ctx("anyone", 1500), org_id, 0)
        assert h.proposals.get_proposal(org_id, 0).status == ProposalStatus.REJECTED

    def test_quorum_not_met(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        h.proposals.vote(_ctx("carol", 11), org_id, 0, VoteDirection.FOR)
        proposal = h.proposals.finalize(_ctx("anyone", 1450), org_id, 0)
        assert proposal.total_votes == 250
        assert proposal.status == ProposalStatus.REJECTED

    def test_majority_not_met(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        h.proposals.vote(_ctx("bob", 11), org_id, 0, VoteDirection.AGAINST)
        h.proposals.vote(_ctx("carol", 12), org_id, 0, VoteDirection.FOR)
        assert h.proposals.finalize(_ctx("anyone", 1450), org_id, 0).status == ProposalStatus.REJECTED

    def test_tie_at_half_passes(self, h: _Harness, org_id: int) -> None:
        h.settings.update_settings(_ctx("alice", 4), org_id, 100, 0, 5000, 100)
        h.membership.join_with_token_proof(_ctx("dave", 5), org_id, 250)
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        h.proposals.vote(_ctx("carol", 11), org_id, 0, VoteDirection.FOR)
        h.proposals.vote(_ctx("dave", 12), org_id, 0, VoteDirection.AGAINST)
        assert h.proposals.finalize(_ctx("anyone", 110), org_id, 0).status == ProposalStatus.PASSED

    def test_no_votes_with_zero_quorum_passes(self, h: _Harness, org_id: int) -> None:
        h.settings.update_settings(_ctx("alice", 4), org_id, 100, 0, 5000, 100)
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        assert h.proposals.finalize(_ctx("anyone", 110), org_id, 0).status == ProposalStatus.PASSED

    def test_finalize_uses_settings_at_finalization(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        h.proposals.vote(_ctx("carol", 11), org_id, 0, VoteDirection.FOR)
        h.settings.update_settings(_ctx("alice", 12), org_id, 1440, 0, 5000, 100)
        assert h.proposals.finalize(_ctx("anyone", 1450), org_id, 0).status == ProposalStatus.PASSED

    def test_quorum_uses_reference_supply(self) -> None:
        h = _Harness(DaoConfig(reference_total_supply=1000))
        org_id = h.guild()
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        h.proposals.vote(_ctx("carol", 11), org_id, 0, VoteDirection.FOR)
        # quorum_needed = floor(1000 * 2000 / 10000) = 200 <= 250
        assert h.proposals.finalize(_ctx("anyone", 1450), org_id, 0).status == ProposalStatus.PASSED

    def test_unknown_proposal(self, h: _Harness, org_id: int) -> None:
        with pytest.raises(NotFound):
            h.proposals.finalize(_ctx("anyone", 1450), org_id, 3)

    def test_anyone_may_finalize(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "T", "D")
        h.proposals.finalize(_ctx("not-a-member", 1450), org_id, 0)
        assert not h.proposals.get_proposal(org_id, 0).is_open

    def test_list_by_status(self, h: _Harness, org_id: int) -> None:
        h.proposals.create_proposal(_ctx("carol", 10), org_id, "A", "")
        h.proposals.create_proposal(_ctx("carol", 20), org_id, "B", "")
        h.proposals.finalize(_ctx("anyone", 1450), org_id, 0)
        assert [p.proposal_id for p in h.proposals.list_proposals(org_id)] == [0, 1]
        active = h.proposals.list_proposals(org_id, ProposalStatus.ACTIVE)
        assert [p.proposal_id for p in active] == [1]


class TestOutcomeArithmetic:
    @pytest.mark.parametrize(
        "votes_for, votes_against, quorum_bp, majority_bp, expected",
        [
            (1_000_000, 250, 2000, 5000, ProposalStatus.PASSED),
            (199_999, 0, 2000, 5000, ProposalStatus.REJECTED),
            (200_000, 0, 2000, 5000, ProposalStatus.PASSED),
            (99_999, 100_002, 2000, 5000, ProposalStatus.REJECTED),
            (100_001, 100_000, 2000, 5000, ProposalStatus.PASSED),
            (3, 0, 0, 10000, ProposalStatus.PASSED),
            (2, 1, 0, 10000, ProposalStatus.REJECTED),
            (0, 5, 0, 0, ProposalStatus.PASSED),
        ],
    )
    def test_evaluate_outcome(
        self, h: _Harness, votes_for, votes_against, quorum_bp, majority_bp, expected,
    ) -> None:
        org_id = h.guild()
        proposal = h.proposals.create_proposal(_ctx("bob", 10), org_id, "T", "")
        proposal.votes_for = votes_for
        proposal.votes_against = votes_against
        proposal.total_votes = votes_for + votes_against
        assert h.proposals.evaluate_outcome(proposal, quorum_bp, majority_bp) == expected

    def test_majority_floors(self, h: _Harness) -> None:
        org_id = h.guild()
        proposal = h.proposals.create_proposal(_ctx("bob", 10), org_id, "T", "")
        # floor(3 * 5000 / 10000) = 1, so one FOR vote out of three passes.
        proposal.votes_for, proposal.votes_against, proposal.total_votes = 1, 2, 3
        assert h.proposals.evaluate_outcome(proposal, 0, 5000) == ProposalStatus.PASSED
