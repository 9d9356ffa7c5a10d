"""Hash-chained audit log of committed mutations.

Each accepted call yields one EventRecord. A record's hash covers its own
fields plus the hash of the record before it, so the log is a chain rooted
at CHAIN_ROOT: editing, dropping or reordering any record breaks every
link after it.

With a storage path the chain is mirrored to JSONL. Reloading recomputes
each hash and each link and refuses the file on the first mismatch.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional


CHAIN_ROOT = "sha256:" + "0" * 64


class EventKind(str, enum.Enum):
    """What a committed call did."""
    ORG_CREATED = "org_created"
    MEMBER_JOINED = "member_joined"
    SETTINGS_UPDATED = "settings_updated"
    PROPOSAL_CREATED = "proposal_created"
    VOTE_CAST = "vote_cast"
    PROPOSAL_FINALIZED = "proposal_finalized"
    TREASURY_DEPOSIT = "treasury_deposit"
    TREASURY_WITHDRAWAL = "treasury_withdrawal"


def _digest(fields: dict[str, Any]) -> str:
    canonical = json.dumps(fields, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """One link of the audit chain."""
    event_id: str
    event_kind: EventKind
    height: int
    actor_id: str
    org_id: int
    payload: dict[str, Any]
    prev_hash: str
    event_hash: str

    @classmethod
    def create(
        cls,
        event_id: str,
        event_kind: EventKind,
        height: int,
        actor_id: str,
        org_id: int,
        payload: dict[str, Any],
        prev_hash: str = CHAIN_ROOT,
    ) -> EventRecord:
        body = {
            "event_id": event_id,
            "event_kind": event_kind.value,
            "height": height,
            "actor_id": actor_id,
            "org_id": org_id,
            "payload": payload,
            "prev_hash": prev_hash,
        }
        return cls(
            event_id=event_id,
            event_kind=event_kind,
            height=height,
            actor_id=actor_id,
            org_id=org_id,
            payload=payload,
            prev_hash=prev_hash,
            event_hash=_digest(body),
        )

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> EventRecord:
        """Rebuild from a stored dict, recomputing the hash.

        Raises ValueError if the stored hash does not match.
        """
        event = cls.create(
            event_id=data["event_id"],
            event_kind=EventKind(data["event_kind"]),
            height=data["height"],
            actor_id=data["actor_id"],
            org_id=data["org_id"],
            payload=data["payload"],
            prev_hash=data["prev_hash"],
        )
        if event.event_hash != data["event_hash"]:
            raise ValueError(
                f"Integrity check failed for event {event.event_id}: stored "
                f"{data['event_hash']} != computed {event.event_hash}"
            )
        return event

    def to_record(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "height": self.height,
            "actor_id": self.actor_id,
            "org_id": self.org_id,
            "payload": self.payload,
            "prev_hash": self.prev_hash,
            "event_hash": self.event_hash,
        }


class EventLog:
    """Append-only chain of EventRecords.

    Usage:
        log = EventLog(Path("data/events.jsonl"))
        log.record("EVT-00000001", EventKind.ORG_CREATED, 1, "alice", 1, {...})
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._storage_path = storage_path
        self._events: list[EventRecord] = []
        self._event_ids: set[str] = set()

        if storage_path is not None and storage_path.exists():
            for event in self._read_chain(storage_path):
                self._events.append(event)
                self._event_ids.add(event.event_id)

    @property
    def head_hash(self) -> str:
        """Hash the next record must link to."""
        return self._events[-1].event_hash if self._events else CHAIN_ROOT

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def record(
        self,
        event_id: str,
        event_kind: EventKind,
        height: int,
        actor_id: str,
        org_id: int,
        payload: dict[str, Any],
    ) -> EventRecord:
        """Build the next link on the current head and append it."""
        event = EventRecord.create(
            event_id, event_kind, height, actor_id, org_id, payload,
            prev_hash=self.head_hash,
        )
        self.append(event)
        return event

    def append(self, event: EventRecord) -> None:
        """Append a prebuilt record.

        Raises:
            ValueError: Duplicate event_id, or prev_hash is not the head.
            OSError: The file mirror could not be written. Nothing is
                recorded in memory either.
        """
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")
        if event.prev_hash != self.head_hash:
            raise ValueError(
                f"Event {event.event_id} does not extend the chain head "
                f"{self.head_hash}"
            )

        if self._storage_path is not None:
            self._storage_path.parent.mkdir(parents=True, exist_ok=True)
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_record(), sort_keys=True, ensure_ascii=False))
                f.write("\n")

        self._events.append(event)
        self._event_ids.add(event.event_id)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def events_for_org(
        self,
        org_id: int,
        kind: Optional[EventKind] = None,
    ) -> list[EventRecord]:
        return [e for e in self.events(kind) if e.org_id == org_id]

    def event_hashes(self, kind: Optional[EventKind] = None) -> list[str]:
        return [e.event_hash for e in self.events(kind)]

    @staticmethod
    def _read_chain(path: Path) -> Iterator[EventRecord]:
        """Yield verified records from a JSONL mirror, failing closed."""
        prev_hash = CHAIN_ROOT
        seen: set[str] = set()
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    event = EventRecord.from_record(json.loads(line))
                except ValueError as e:
                    raise ValueError(f"{path.name} line {line_num}: {e}") from e
                if event.event_id in seen:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): "
                        f"{event.event_id}"
                    )
                if event.prev_hash != prev_hash:
                    raise ValueError(
                        f"Chain break at line {line_num}: event {event.event_id} "
                        f"links to {event.prev_hash}, expected {prev_hash}"
                    )
                seen.add(event.event_id)
                prev_hash = event.event_hash
                yield event
