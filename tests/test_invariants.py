"""Tests for structural invariant checks.

Randomised operation sequences against the service must never leave the
store in a state check_store rejects; hand-corrupted stores must be
flagged.
"""

from __future__ import annotations

import random

import pytest

from daohub.invariants import check_store
from daohub.models.governance import VoteDirection
from daohub.persistence.state_store import StateStore
from daohub.service import DaoService
from daohub.treasury.custody import InMemoryCustody


ACCOUNTS = ["alice", "bob", "carol", "dave", "erin", "frank"]


def _scenario() -> DaoService:
    service = DaoService()
    service.create_organization("alice", "Guild", "", "tok", 100, now=1)
    service.join_directly("bob", 1, now=2)
    service.create_proposal("bob", 1, "T", "", now=3)
    service.vote("bob", 1, 0, VoteDirection.FOR, now=4)
    return service


class TestCleanState:
    def test_empty_store(self) -> None:
        assert check_store(StateStore()) == []

    def test_after_scenario(self) -> None:
        assert check_store(_scenario().store) == []


class TestCorruption:
    def test_tally_mismatch(self) -> None:
        store = _scenario().store
        store.proposals[(1, 0)].votes_for += 1
        errors = check_store(store)
        assert any("total_votes" in e for e in errors)
        assert any("differ from vote records" in e for e in errors)

    def test_negative_treasury(self) -> None:
        store = _scenario().store
        store.treasuries[1].balance = -1
        assert check_store(store) == ["treasury 1 balance is negative"]

    def test_missing_settings(self) -> None:
        store = _scenario().store
        del store.settings[1]
        assert check_store(store) == ["organization 1 has no governance settings"]

    def test_proposal_id_beyond_counter(self) -> None:
        store = _scenario().store
        store.proposal_counters[1] = 0
        assert any("counter" in e for e in check_store(store))

    def test_org_outside_allocated_range(self) -> None:
        store = _scenario().store
        store.next_org_id = 1
        assert any("allocated range" in e for e in check_store(store))


class TestRandomisedSequences:
    @pytest.mark.parametrize("seed", range(8))
    def test_invariants_hold(self, seed: int) -> None:
        rng = random.Random(seed)
        custody = InMemoryCustody({a: 10_000 for a in ACCOUNTS})
        service = DaoService(custody=custody)
        now = 0
        org_ids: list[int] = []
        seen_org_ids: list[int] = []

        for _ in range(200):
            now += rng.randint(0, 60)
            caller = rng.choice(ACCOUNTS)
            action = rng.randrange(8)
            org_id = rng.choice(org_ids) if org_ids else 1

            if action == 0 or not org_ids:
                result = service.create_organization(
                    caller, f"Org {now}", "", "tok", rng.randint(1, 500), now=now,
                )
                if result.success:
                    org_ids.append(result.data["org_id"])
                    seen_org_ids.append(result.data["org_id"])
            elif action == 1:
                service.join_directly(caller, org_id, now=now)
            elif action == 2:
                service.join_with_token_proof(caller, org_id, rng.randint(0, 1_000), now=now)
            elif action == 3:
                service.update_settings(
                    caller, org_id, rng.randint(1, 200), rng.randint(0, 10_000),
                    rng.randint(0, 10_000), rng.randint(0, 300), now=now,
                )
            elif action == 4:
                service.create_proposal(caller, org_id, "T", "", now=now)
            elif action == 5:
                direction = rng.choice(list(VoteDirection))
                service.vote(caller, org_id, rng.randint(0, 4), direction, now=now)
            elif action == 6:
                service.finalize(caller, org_id, rng.randint(0, 4), now=now)
            else:
                if rng.random() < 0.5:
                    service.deposit(caller, org_id, rng.randint(1, 3_000), now=now)
                else:
                    service.withdraw(caller, org_id, rng.choice(ACCOUNTS),
                                     rng.randint(1, 3_000), now=now)

        assert check_store(service.store) == []
        assert seen_org_ids == sorted(set(seen_org_ids))
        assert seen_org_ids == list(range(1, len(seen_org_ids) + 1))
        # Custody conserves the total supply across every movement.
        assert sum(custody.to_records().values()) == 10_000 * len(ACCOUNTS)
        treasury_total = sum(t.balance for t in service.store.treasuries.values())
        held = sum(v for k, v in custody.to_records().items() if k.startswith("dao-treasury:"))
        assert treasury_total == held
