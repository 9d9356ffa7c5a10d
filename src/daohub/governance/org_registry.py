"""Organization Registry - identity, activation state and id allocation.

Every other component resolves a caller's action through this registry
first: the organization must exist and be active.

Creating an organization is a single atomic unit that writes:
- the Organization record,
- default GovernanceSettings,
- a zero-balance Treasury,
- an administrator Member record for the creator (voting power 0),
- the organization's proposal counter, starting at 0,
and advances the registry's org id allocator by one.

Org ids start at 1, increase by 1 per successful creation, and are never
reused. A failed creation consumes no id.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from daohub.config import DaoConfig
from daohub.context import CallContext
from daohub.engine.arithmetic import UINT128_MAX
from daohub.errors import DaoInactive, InvalidParams, NotFound
from daohub.models.governance import (
    GovernanceSettings,
    Member,
    Organization,
    Treasury,
)
from daohub.persistence.state_store import StateStore


class OrgRegistryEngine:
    """Organization creation and lookup."""

    def __init__(self, store: StateStore, config: DaoConfig) -> None:
        self._store = store
        self._config = config

    def create_organization(
        self,
        ctx: CallContext,
        name: str,
        description: str,
        governance_token: str,
        membership_threshold: int,
    ) -> Organization:
        """Create a new organization with the caller as administrator.

        Args:
            ctx: Caller and current height.
            name: Organization name (non-empty).
            description: Free-form description.
            governance_token: Opaque reference to the external token
                members prove balances against.
            membership_threshold: Minimum asserted balance for
                join_with_token_proof; also the default proposal threshold.

        Returns:
            The new Organization.

        Raises:
            InvalidParams: If the name is empty or the threshold is not a
                positive integer.
        """
        if not name or not name.strip():
            raise InvalidParams("Organization name cannot be empty")
        if isinstance(membership_threshold, bool) or not isinstance(membership_threshold, int):
            raise InvalidParams("Membership threshold must be an integer")
        if membership_threshold <= 0:
            raise InvalidParams(
                f"Membership threshold must be > 0, got {membership_threshold}"
            )
        if membership_threshold > UINT128_MAX:
            raise InvalidParams("Membership threshold exceeds the uint128 range")

        store = self._store
        with store.transaction():
            org_id = store.next_org_id
            org = Organization(
                org_id=org_id,
                name=name.strip(),
                description=description,
                creator=ctx.caller,
                created_at=ctx.now,
                governance_token=governance_token,
                membership_threshold=membership_threshold,
            )
            store.put("organizations", org_id, org)
            store.put("settings", org_id, GovernanceSettings(
                org_id=org_id,
                voting_period=self._config.default_voting_period,
                quorum_bp=self._config.default_quorum_bp,
                majority_bp=self._config.default_majority_bp,
                proposal_threshold=membership_threshold,
            ))
            store.put("treasuries", org_id, Treasury(
                org_id=org_id, balance=0, last_updated=ctx.now,
            ))
            # Creator is an administrator regardless of weight.
            store.put("members", (org_id, ctx.caller), Member(
                org_id=org_id,
                account=ctx.caller,
                joined_at=ctx.now,
                voting_power=0,
                is_admin=True,
            ))
            store.put("proposal_counters", org_id, 0)
            store.next_org_id = org_id + 1
        return org

    def get_organization(self, org_id: int) -> Optional[Organization]:
        """Retrieve a copy of an organization by id."""
        org = self._store.organizations.get(org_id)
        return replace(org) if org is not None else None

    def require_organization(self, org_id: int) -> Organization:
        """Return the organization or raise NotFound."""
        org = self._store.organizations.get(org_id)
        if org is None:
            raise NotFound(f"Organization not found: {org_id}")
        return org

    def require_active(self, org_id: int) -> Organization:
        """Return the organization if it exists and is active.

        Raises:
            NotFound: Unknown org id.
            DaoInactive: Organization exists but is inactive.
        """
        org = self.require_organization(org_id)
        if not org.active:
            raise DaoInactive(f"Organization {org_id} is not active")
        return org

    @property
    def next_org_id(self) -> int:
        """The id the next successful creation will receive."""
        return self._store.next_org_id

    def list_organizations(self) -> list[Organization]:
        """All organizations in id order."""
        return [
            replace(self._store.organizations[k])
            for k in sorted(self._store.organizations)
        ]
