"""daohub service - unified facade for the governance engine.

This is the primary interface for programmatic access. It orchestrates:
- Organization registry (create, look up)
- Membership ledger (direct join, join by token proof)
- Governance settings (administrator replacement)
- Proposal lifecycle and vote accounting (create, vote, finalize)
- Treasury ledger (deposit, withdraw)
- Persistence (state snapshot, audit event log)

Execution model: mutating calls are serialized behind one lock and each
runs inside a StateStore transaction. A call either commits all of its
writes plus exactly one audit event, or commits nothing. Rejections come
back as a failed ServiceResult carrying the error kind; nothing is retried.

Persistence failures after the audit event is written do not roll back
in-memory state. They mark the service as persistence-degraded and attach
a warning to the result.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Optional

from daohub.config import DaoConfig
from daohub.context import CallContext, HeightClock
from daohub.errors import DaoError, ErrorKind
from daohub.governance.membership import MembershipLedger
from daohub.governance.org_registry import OrgRegistryEngine
from daohub.governance.proposals import ProposalEngine
from daohub.governance.settings import SettingsEngine
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
from daohub.persistence.event_log import EventKind, EventLog
from daohub.persistence.state_store import StateStore
from daohub.treasury.custody import AssetCustody, InMemoryCustody
from daohub.treasury.ledger import TreasuryLedger

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


class AuditTrailError(RuntimeError):
    """Raised when an audit event cannot be appended."""


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None


# An operation body: takes the call context and a list it may push undo
# callbacks onto (each returns True once its effect is reversed); returns (event kind, org id, event payload, result data).
_Operation = Callable[
    [CallContext, list[Callable[[], bool]]],
    tuple[EventKind, int, dict[str, Any], dict[str, Any]],
]


class DaoService:
    """Multi-tenant governance engine facade.

    Usage:
        service = DaoService()
        result = service.create_organization("alice", "Guild", "...", "token-1", 100, now=1)
        org_id = result.data["org_id"]
        service.join_directly("bob", org_id, now=2)
        service.join_with_token_proof("carol", org_id, 250, now=3)
        result = service.create_proposal("carol", org_id, "Fund docs", "...", now=4)
        service.vote("bob", org_id, result.data["proposal_id"], VoteDirection.FOR, now=5)
        service.finalize("anyone", org_id, 0, now=4 + 1440)

    Persistence (optional):
        service = DaoService(store=StateStore(path), event_log=EventLog(path2))
    """

    def __init__(
        self,
        config: Optional[DaoConfig] = None,
        store: Optional[StateStore] = None,
        event_log: Optional[EventLog] = None,
        custody: Optional[AssetCustody] = None,
        clock: Optional[HeightClock] = None,
    ) -> None:
        self._config = config or DaoConfig.defaults()
        self._store = store if store is not None else StateStore()
        self._event_log = event_log if event_log is not None else EventLog()
        self._custody = custody if custody is not None else InMemoryCustody()
        self._clock = clock or HeightClock()
        self._lock = threading.RLock()

        self._registry = OrgRegistryEngine(self._store, self._config)
        self._membership = MembershipLedger(self._store, self._registry, self._config)
        self._settings = SettingsEngine(self._store, self._registry, self._membership)
        self._proposals = ProposalEngine(
            self._store, self._registry, self._membership, self._settings,
            self._config,
        )
        self._treasury = TreasuryLedger(
            self._store, self._registry, self._membership, self._custody,
        )

        # Continue numbering from the persisted log to avoid ID collision.
        self._event_counter = self._event_log.count
        self._persistence_degraded = False

    @property
    def config(self) -> DaoConfig:
        return self._config

    @property
    def custody(self) -> AssetCustody:
        return self._custody

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def clock(self) -> HeightClock:
        return self._clock

    # ------------------------------------------------------------------
    # Organization registry
    # ------------------------------------------------------------------

    def create_organization(
        self,
        caller: str,
        name: str,
        description: str,
        governance_token: str,
        membership_threshold: int,
        now: Optional[int] = None,
    ) -> ServiceResult:
        """Create an organization; the caller becomes its administrator."""
        def op(ctx: CallContext, undo: list[Callable[[], bool]]):
            org = self._registry.create_organization(
                ctx, name, description, governance_token, membership_threshold,
            )
            payload = {
                "name": org.name,
                "governance_token": org.governance_token,
                "membership_threshold": org.membership_threshold,
            }
            return EventKind.ORG_CREATED, org.org_id, payload, {"org_id": org.org_id}

        return self._execute("create_organization", caller, now, op)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def join_directly(
        self,
        caller: str,
        org_id: int,
        now: Optional[int] = None,
    ) -> ServiceResult:
        """Join with the flat direct-join voting power."""
        def op(ctx: CallContext, undo: list[Callable[[], bool]]):
            member = self._membership.join_directly(ctx, org_id)
            return self._member_event(member, "direct")

        return self._execute("join_directly", caller, now, op)

    def join_with_token_proof(
        self,
        caller: str,
        org_id: int,
        asserted_balance: int,
        now: Optional[int] = None,
    ) -> ServiceResult:
        """Join with voting power equal to a caller-asserted token balance.

        The balance is not verified against the token here.
        """
        def op(ctx: CallContext, undo: list[Callable[[], bool]]):
            member = self._membership.join_with_token_proof(
                ctx, org_id, asserted_balance,
            )
            return self._member_event(member, "token_proof")

        return self._execute("join_with_token_proof", caller, now, op)

    # ------------------------------------------------------------------
    # Governance settings
    # ------------------------------------------------------------------

    def update_settings(
        self,
        caller: str,
        org_id: int,
        voting_period: int,
        quorum_bp: int,
        majority_bp: int,
        proposal_threshold: int,
        now: Optional[int] = None,
    ) -> ServiceResult:
        """Replace an organization's governance settings (admin only)."""
        def op(ctx: CallContext, undo: list[Callable[[], bool]]):
            settings = self._settings.update_settings(
                ctx, org_id, voting_period, quorum_bp, majority_bp,
                proposal_threshold,
            )
            payload = asdict(settings)
            return EventKind.SETTINGS_UPDATED, org_id, payload, dict(payload)

        return self._execute("update_settings", caller, now, op)

    # ------------------------------------------------------------------
    # Proposals and votes
    # ------------------------------------------------------------------

    def create_proposal(
        self,
        caller: str,
        org_id: int,
        title: str,
        description: str,
        now: Optional[int] = None,
    ) -> ServiceResult:
        """Open a proposal for voting."""
        def op(ctx: CallContext, undo: list[Callable[[], bool]]):
            proposal = self._proposals.create_proposal(ctx, org_id, title, description)
            payload = {
                "proposal_id": proposal.proposal_id,
                "title": proposal.title,
                "voting_ends_at": proposal.voting_ends_at,
            }
            return EventKind.PROPOSAL_CREATED, org_id, payload, dict(payload)

        return self._execute("create_proposal", caller, now, op)

    def vote(
        self,
        caller: str,
        org_id: int,
        proposal_id: int,
        direction: VoteDirection,
        now: Optional[int] = None,
    ) -> ServiceResult:
        """Cast the caller's vote; weight is the caller's voting power."""
        def op(ctx: CallContext, undo: list[Callable[[], bool]]):
            vote = self._proposals.vote(ctx, org_id, proposal_id, direction)
            proposal = self._proposals.get_proposal(org_id, proposal_id)
            payload = {
                "proposal_id": proposal_id,
                "direction": vote.direction.value,
                "weight": vote.weight,
            }
            data = {
                **payload,
                "votes_for": proposal.votes_for,
                "votes_against": proposal.votes_against,
                "total_votes": proposal.total_votes,
            }
            return EventKind.VOTE_CAST, org_id, payload, data

        return self._execute("vote", caller, now, op)

    def finalize(
        self,
        caller: str,
        org_id: int,
        proposal_id: int,
        now: Optional[int] = None,
    ) -> ServiceResult:
        """Settle a proposal whose voting deadline has been reached."""
        def op(ctx: CallContext, undo: list[Callable[[], bool]]):
            proposal = self._proposals.finalize(ctx, org_id, proposal_id)
            payload = {
                "proposal_id": proposal_id,
                "status": proposal.status.value,
                "votes_for": proposal.votes_for,
                "votes_against": proposal.votes_against,
                "total_votes": proposal.total_votes,
            }
            return EventKind.PROPOSAL_FINALIZED, org_id, payload, dict(payload)

        return self._execute("finalize", caller, now, op)

    # ------------------------------------------------------------------
    # Treasury
    # ------------------------------------------------------------------

    def deposit(
        self,
        caller: str,
        org_id: int,
        amount: int,
        now: Optional[int] = None,
    ) -> ServiceResult:
        """Move assets from the caller into the organization's treasury."""
        def op(ctx: CallContext, undo: list[Callable[[], bool]]):
            movement = self._treasury.deposit(ctx, org_id, amount)
            undo.append(lambda: self._treasury.compensate(movement))
            payload = {"amount": amount, "balance": movement.balance_after}
            return EventKind.TREASURY_DEPOSIT, org_id, payload, dict(payload)

        return self._execute("deposit", caller, now, op)

    def withdraw(
        self,
        caller: str,
        org_id: int,
        recipient: str,
        amount: int,
        now: Optional[int] = None,
    ) -> ServiceResult:
        """Pay assets out of the organization's treasury (admin only)."""
        def op(ctx: CallContext, undo: list[Callable[[], bool]]):
            movement = self._treasury.withdraw(ctx, org_id, recipient, amount)
            undo.append(lambda: self._treasury.compensate(movement))
            payload = {
                "recipient": recipient,
                "amount": amount,
                "balance": movement.balance_after,
            }
            return EventKind.TREASURY_WITHDRAWAL, org_id, payload, dict(payload)

        return self._execute("withdraw", caller, now, op)

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    def get_organization(self, org_id: int) -> Optional[Organization]:
        return self._registry.get_organization(org_id)

    def get_settings(self, org_id: int) -> Optional[GovernanceSettings]:
        return self._settings.get_settings(org_id)

    def get_proposal(self, org_id: int, proposal_id: int) -> Optional[Proposal]:
        return self._proposals.get_proposal(org_id, proposal_id)

    def get_member(self, org_id: int, account: str) -> Optional[Member]:
        return self._membership.get_member(org_id, account)

    def get_treasury(self, org_id: int) -> Optional[Treasury]:
        return self._treasury.get_treasury(org_id)

    def get_vote(self, org_id: int, proposal_id: int, voter: str) -> Optional[Vote]:
        return self._proposals.get_vote(org_id, proposal_id, voter)

    def get_next_org_id(self) -> int:
        return self._registry.next_org_id

    def is_active_member(self, org_id: int, account: str) -> bool:
        return self._membership.is_active_member(org_id, account)

    def is_admin(self, org_id: int, account: str) -> bool:
        return self._membership.is_admin(org_id, account)

    def list_organizations(self) -> list[Organization]:
        return self._registry.list_organizations()

    def list_members(self, org_id: int) -> list[Member]:
        return self._membership.list_members(org_id)

    def list_proposals(
        self,
        org_id: int,
        status: Optional[ProposalStatus] = None,
    ) -> list[Proposal]:
        return self._proposals.list_proposals(org_id, status)

    def list_votes(self, org_id: int, proposal_id: int) -> list[Vote]:
        return self._proposals.list_votes(org_id, proposal_id)

    def status(self) -> dict[str, Any]:
        """Return system-wide status summary."""
        by_status: dict[str, int] = {}
        for p in self._store.proposals.values():
            by_status[p.status.value] = by_status.get(p.status.value, 0) + 1
        return {
            "version": VERSION,
            "organizations": {
                "total": len(self._store.organizations),
                "next_org_id": self._store.next_org_id,
            },
            "members": len(self._store.members),
            "proposals": {
                "total": len(self._store.proposals),
                "by_status": by_status,
            },
            "votes": len(self._store.votes),
            "treasury_total": sum(t.balance for t in self._store.treasuries.values()),
            "events": self._event_log.count,
            "height": self._clock.height,
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _execute(
        self,
        action: str,
        caller: str,
        now: Optional[int],
        op: _Operation,
    ) -> ServiceResult:
        """Run one mutating call as a serialized, all-or-nothing unit.

        Ordering:
        1. Resolve the ambient context. The height is checked here but
           only recorded on the clock once the call commits.
        2. Inside a store transaction, run the operation and append its
           audit event. Any failure restores the store and runs undo
           callbacks for external effects already performed.
        3. Persist the snapshot. Failure here only degrades persistence.
        """
        with self._lock:
            try:
                ctx = self._clock.context_for(caller, now)
            except ValueError as e:
                logger.warning("%s rejected: %s", action, e)
                return ServiceResult(
                    success=False,
                    errors=[str(e)],
                    error_kind=ErrorKind.INVALID_PARAMS,
                )

            undo: list[Callable[[], bool]] = []
            try:
                with self._store.transaction():
                    kind, org_id, payload, data = op(ctx, undo)
                    self._record_event(kind, ctx, org_id, payload)
            except DaoError as e:
                undo_errors = self._run_undo(action, undo)
                logger.warning(
                    "%s by %s rejected (%s): %s", action, ctx.caller, e.kind.value, e,
                )
                return ServiceResult(
                    success=False, errors=[str(e), *undo_errors], error_kind=e.kind,
                )
            except AuditTrailError as e:
                undo_errors = self._run_undo(action, undo)
                logger.error(
                    "%s by %s aborted, audit trail unavailable: %s",
                    action, ctx.caller, e,
                )
                return ServiceResult(success=False, errors=[str(e), *undo_errors])
            except BaseException:
                self._run_undo(action, undo)
                logger.exception("%s by %s aborted", action, ctx.caller)
                raise

            self._clock.observe(ctx.now)
            logger.info("%s by %s committed at height %d", action, ctx.caller, ctx.now)
            warning = self._safe_persist_post_audit()
            if warning:
                data["warning"] = warning
            return ServiceResult(success=True, data=data)

    def _run_undo(self, action: str, undo: list[Callable[[], bool]]) -> list[str]:
        """Reverse external effects of an aborted call, newest first.

        Every callback runs even if an earlier one fails, and a failure
        never replaces the error that aborted the call. A callback that
        returns False or raises leaves assets out of line with the rolled
        back ledger: that is logged, marks persistence as degraded, and
        comes back as an error message.
        """
        errors: list[str] = []
        for callback in reversed(undo):
            try:
                reversed_ok = callback()
            except Exception:
                logger.exception("%s: compensation raised", action)
                reversed_ok = False
            if not reversed_ok:
                self._persistence_degraded = True
                logger.error(
                    "%s: compensation failed, custody no longer matches the "
                    "treasury ledger", action,
                )
                errors.append(
                    "Compensation failed: custody no longer matches the treasury ledger"
                )
        return errors

    def _member_event(self, member: Member, path: str):
        payload = {
            "account": member.account,
            "voting_power": member.voting_power,
            "path": path,
        }
        data = {
            "org_id": member.org_id,
            "account": member.account,
            "voting_power": member.voting_power,
            "is_admin": member.is_admin,
        }
        return EventKind.MEMBER_JOINED, member.org_id, payload, data

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _record_event(
        self,
        kind: EventKind,
        ctx: CallContext,
        org_id: int,
        payload: dict[str, Any],
    ) -> None:
        """Append one audit event. Raises AuditTrailError on failure."""
        event_id = self._next_event_id()
        try:
            self._event_log.record(
                event_id, kind, ctx.now, ctx.caller, org_id, payload,
            )
        except (ValueError, OSError) as e:
            self._event_counter -= 1
            raise AuditTrailError(f"Event log failure: {e}") from e

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after the audit event has been committed.

        MUST NOT roll back in-memory state - the audit trail already
        records the change. Sets the degraded flag and returns a warning.
        """
        try:
            self._store.save()
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.error("State snapshot write failed: %s", e)
            return f"Persistence degraded: {e} - state committed in audit trail but StateStore is stale"
