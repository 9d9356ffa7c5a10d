"""Membership Ledger - admission records per (organization, account).

Two admission paths:
- join_directly: flat default voting power, not tied to any balance.
- join_with_token_proof: voting power equals the caller-asserted balance,
  which must meet the organization's membership threshold.

The asserted balance is taken at face value. The external token interface
exists so a caller can build the proof off-path; this ledger never
queries it. That trust boundary is intentional and documented, not a
missing check.

Membership records are never updated or removed. There is no leave,
reweight or expel operation.
"""

from __future__ import annotations

from typing import Optional

from daohub.config import DaoConfig
from daohub.context import CallContext
from daohub.errors import InsufficientBalance, InvalidParams, Unauthorized
from daohub.engine.arithmetic import UINT128_MAX
from daohub.governance.org_registry import OrgRegistryEngine
from daohub.models.governance import Member
from daohub.persistence.state_store import StateStore


class MembershipLedger:
    """Admission and role predicates."""

    def __init__(
        self,
        store: StateStore,
        registry: OrgRegistryEngine,
        config: DaoConfig,
    ) -> None:
        self._store = store
        self._registry = registry
        self._config = config

    def join_directly(self, ctx: CallContext, org_id: int) -> Member:
        """Admit the caller with the flat direct-join voting power.

        Raises:
            NotFound, DaoInactive: Organization missing or inactive.
            InvalidParams: Caller is already a member.
        """
        self._registry.require_active(org_id)
        self._require_not_member(org_id, ctx.caller)
        return self._insert(ctx, org_id, self._config.direct_join_voting_power)

    def join_with_token_proof(
        self,
        ctx: CallContext,
        org_id: int,
        asserted_balance: int,
    ) -> Member:
        """Admit the caller with voting power equal to ``asserted_balance``.

        Raises:
            NotFound, DaoInactive: Organization missing or inactive.
            InsufficientBalance: Balance below the membership threshold.
            InvalidParams: Caller is already a member, or the balance is
                not a non-negative integer.
        """
        org = self._registry.require_active(org_id)
        if isinstance(asserted_balance, bool) or not isinstance(asserted_balance, int):
            raise InvalidParams("Asserted balance must be an integer")
        if asserted_balance < 0:
            raise InvalidParams(f"Asserted balance must be >= 0, got {asserted_balance}")
        if asserted_balance > UINT128_MAX:
            raise InvalidParams("Asserted balance exceeds the uint128 range")
        if asserted_balance < org.membership_threshold:
            raise InsufficientBalance(
                f"Asserted balance {asserted_balance} is below membership "
                f"threshold {org.membership_threshold}"
            )
        self._require_not_member(org_id, ctx.caller)
        return self._insert(ctx, org_id, asserted_balance)

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def get_member(self, org_id: int, account: str) -> Optional[Member]:
        return self._store.members.get((org_id, account))

    def is_active_member(self, org_id: int, account: str) -> bool:
        member = self._store.members.get((org_id, account))
        return member is not None and member.active

    def is_admin(self, org_id: int, account: str) -> bool:
        member = self._store.members.get((org_id, account))
        return member is not None and member.active and member.is_admin

    def require_member(self, org_id: int, account: str) -> Member:
        """Return the active member record or raise Unauthorized."""
        member = self._store.members.get((org_id, account))
        if member is None or not member.active:
            raise Unauthorized(
                f"Account {account} is not an active member of organization {org_id}"
            )
        return member

    def require_admin(self, org_id: int, account: str) -> Member:
        """Return the administrator's member record or raise Unauthorized."""
        member = self.require_member(org_id, account)
        if not member.is_admin:
            raise Unauthorized(
                f"Account {account} is not an administrator of organization {org_id}"
            )
        return member

    def list_members(self, org_id: int) -> list[Member]:
        """Members of one organization, ordered by join height then account."""
        members = [m for (oid, _), m in self._store.members.items() if oid == org_id]
        members.sort(key=lambda m: (m.joined_at, m.account))
        return members

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_not_member(self, org_id: int, account: str) -> None:
        if (org_id, account) in self._store.members:
            raise InvalidParams(
                f"Account {account} is already a member of organization {org_id}"
            )

    def _insert(self, ctx: CallContext, org_id: int, voting_power: int) -> Member:
        member = Member(
            org_id=org_id,
            account=ctx.caller,
            joined_at=ctx.now,
            voting_power=voting_power,
            is_admin=False,
        )
        with self._store.transaction():
            self._store.put("members", (org_id, ctx.caller), member)
        return member
