"""Shared keyed-record store for every organization.

All records live in flat composite-key mappings rather than nested
collections:

    organizations      org_id                          -> Organization
    settings           org_id                          -> GovernanceSettings
    members            (org_id, account)               -> Member
    proposals          (org_id, proposal_id)           -> Proposal
    votes              (org_id, proposal_id, account)  -> Vote
    treasuries         org_id                          -> Treasury
    proposal_counters  org_id                          -> next proposal_id

plus the registry's ``next_org_id`` allocator.

``transaction()`` gives each call all-or-nothing semantics. Writes go
through ``put``, which journals the value each key held before the call;
if the body raises, only those keys are put back. Records are replaced,
never edited in place, so a journaled record still holds its old values.
Durable saving is separate (``save()``) so the service can decide what a
persistence failure means after the audit event has been written.
"""

from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Any, Iterator, Optional

from daohub.models.governance import (
    GovernanceSettings,
    Member,
    Organization,
    Proposal,
    ProposalStatus,
    Treasury,
    Vote,
    VoteDirection,
)


SNAPSHOT_VERSION = 1

_MAPPINGS = (
    "organizations",
    "settings",
    "members",
    "proposals",
    "votes",
    "treasuries",
    "proposal_counters",
)

_ABSENT = object()


class StateStore:
    """In-memory keyed mappings with optional JSON snapshot persistence."""

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._storage_path = storage_path
        self._depth = 0
        self._journal: Optional[list[tuple[str, Any, Any]]] = None
        self._journaled: set[tuple[str, Any]] = set()
        self.next_org_id: int = 1
        self.organizations: dict[int, Organization] = {}
        self.settings: dict[int, GovernanceSettings] = {}
        self.members: dict[tuple[int, str], Member] = {}
        self.proposals: dict[tuple[int, int], Proposal] = {}
        self.votes: dict[tuple[int, int, str], Vote] = {}
        self.treasuries: dict[int, Treasury] = {}
        self.proposal_counters: dict[int, int] = {}

        if storage_path is not None and storage_path.exists():
            self.load_snapshot(json.loads(storage_path.read_text(encoding="utf-8")))

    @property
    def storage_path(self) -> Optional[Path]:
        return self._storage_path

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    # ------------------------------------------------------------------
    # Atomic unit
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[StateStore]:
        """Run a block against the store with all-or-nothing effect.

        Writes made through ``put`` are journaled with the value they
        replaced; if the block raises, the journal is unwound in reverse.
        Nested transactions join the outermost one.
        """
        if self._journal is not None:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        journal: list[tuple[str, Any, Any]] = []
        next_org_id = self.next_org_id
        self._journal = journal
        self._journaled = set()
        self._depth = 1
        try:
            yield self
        except BaseException:
            self._unwind(journal)
            self.next_org_id = next_org_id
            raise
        finally:
            self._journal = None
            self._journaled = set()
            self._depth = 0

    def put(self, mapping: str, key: Any, record: Any) -> None:
        """Store ``record`` under ``key`` in one of the keyed mappings."""
        if mapping not in _MAPPINGS:
            raise KeyError(f"Unknown mapping: {mapping}")
        table = getattr(self, mapping)
        if self._journal is not None and (mapping, key) not in self._journaled:
            self._journal.append((mapping, key, table.get(key, _ABSENT)))
            self._journaled.add((mapping, key))
        table[key] = record

    def _unwind(self, journal: list[tuple[str, Any, Any]]) -> None:
        for mapping, key, previous in reversed(journal):
            table = getattr(self, mapping)
            if previous is _ABSENT:
                table.pop(key, None)
            else:
                table[key] = previous

    # ------------------------------------------------------------------
    # Snapshot serialisation
    # ------------------------------------------------------------------

    def to_snapshot(self) -> dict[str, Any]:
        """Serialise every mapping. Composite keys become record fields."""
        return {
            "version": SNAPSHOT_VERSION,
            "next_org_id": self.next_org_id,
            "organizations": [asdict(o) for o in self.organizations.values()],
            "settings": [asdict(s) for s in self.settings.values()],
            "members": [asdict(m) for m in self.members.values()],
            "proposals": [
                {**asdict(p), "status": p.status.value}
                for p in self.proposals.values()
            ],
            "votes": [
                {**asdict(v), "direction": v.direction.value}
                for v in self.votes.values()
            ],
            "treasuries": [asdict(t) for t in self.treasuries.values()],
            "proposal_counters": [
                {"org_id": org_id, "next_proposal_id": counter}
                for org_id, counter in self.proposal_counters.items()
            ],
        }

    def load_snapshot(self, data: dict[str, Any]) -> None:
        """Replace all state with the contents of a snapshot.

        Raises:
            ValueError: On an unknown snapshot version or a record that
                violates model invariants.
        """
        version = data.get("version")
        if version != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported snapshot version: {version}")

        self.next_org_id = int(data["next_org_id"])
        self.organizations = {
            o["org_id"]: Organization(**o) for o in data.get("organizations", [])
        }
        self.settings = {
            s["org_id"]: GovernanceSettings(**s) for s in data.get("settings", [])
        }
        self.members = {}
        for md in data.get("members", []):
            member = Member(**md)
            self.members[(member.org_id, member.account)] = member
        self.proposals = {}
        for pd in data.get("proposals", []):
            proposal = Proposal(**{**pd, "status": ProposalStatus(pd["status"])})
            self.proposals[(proposal.org_id, proposal.proposal_id)] = proposal
        self.votes = {}
        for vd in data.get("votes", []):
            vote = Vote(**{**vd, "direction": VoteDirection(vd["direction"])})
            self.votes[(vote.org_id, vote.proposal_id, vote.voter)] = vote
        self.treasuries = {
            t["org_id"]: Treasury(**t) for t in data.get("treasuries", [])
        }
        self.proposal_counters = {
            c["org_id"]: c["next_proposal_id"]
            for c in data.get("proposal_counters", [])
        }

    def save(self) -> None:
        """Write the snapshot atomically (temp file + rename).

        No-op without a storage path. Raises OSError on failure; the
        previous snapshot file is left intact.
        """
        if self._storage_path is None:
            return
        path = self._storage_path
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(
            self.to_snapshot(), sort_keys=True, ensure_ascii=False, indent=2,
        ).encode("utf-8")

        fd, tmp_name = tempfile.mkstemp(
            prefix=path.name + ".", suffix=".tmp", dir=str(path.parent),
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(str(tmp_path), str(path))
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
