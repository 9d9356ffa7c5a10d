"""Persistence - shared keyed-record store and append-only audit log."""

from daohub.persistence.event_log import EventKind, EventLog, EventRecord
from daohub.persistence.state_store import StateStore

__all__ = ["EventKind", "EventLog", "EventRecord", "StateStore"]
