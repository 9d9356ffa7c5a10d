"""Governance Settings Store - per-organization tunables.

Settings are created with defaults by the registry and replaced in full
by an administrator. The proposal engine reads them; it never writes.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from daohub.context import CallContext
from daohub.engine.arithmetic import UINT128_MAX
from daohub.errors import InvalidParams, NotFound
from daohub.governance.membership import MembershipLedger
from daohub.governance.org_registry import OrgRegistryEngine
from daohub.models.governance import BASIS_POINTS, GovernanceSettings
from daohub.persistence.state_store import StateStore


class SettingsEngine:
    """Reads and administrator-only replacement of GovernanceSettings."""

    def __init__(
        self,
        store: StateStore,
        registry: OrgRegistryEngine,
        membership: MembershipLedger,
    ) -> None:
        self._store = store
        self._registry = registry
        self._membership = membership

    def update_settings(
        self,
        ctx: CallContext,
        org_id: int,
        voting_period: int,
        quorum_bp: int,
        majority_bp: int,
        proposal_threshold: int,
    ) -> GovernanceSettings:
        """Replace an organization's settings.

        Raises:
            NotFound, DaoInactive: Organization missing or inactive.
            Unauthorized: Caller is not an administrator.
            InvalidParams: voting_period <= 0 or so large that a deadline
                from the current height leaves the uint128 range, a
                basis-point value outside [0, 10000], or a proposal
                threshold outside the uint128 range.
        """
        self._registry.require_active(org_id)
        self._membership.require_admin(org_id, ctx.caller)

        for label, value in (
            ("voting_period", voting_period),
            ("quorum_bp", quorum_bp),
            ("majority_bp", majority_bp),
            ("proposal_threshold", proposal_threshold),
        ):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidParams(f"{label} must be an integer")
        if voting_period <= 0:
            raise InvalidParams(f"voting_period must be > 0, got {voting_period}")
        if not 0 <= quorum_bp <= BASIS_POINTS:
            raise InvalidParams(
                f"quorum_bp must be within [0, {BASIS_POINTS}], got {quorum_bp}"
            )
        if not 0 <= majority_bp <= BASIS_POINTS:
            raise InvalidParams(
                f"majority_bp must be within [0, {BASIS_POINTS}], got {majority_bp}"
            )
        if proposal_threshold < 0:
            raise InvalidParams(
                f"proposal_threshold must be >= 0, got {proposal_threshold}"
            )
        if proposal_threshold > UINT128_MAX:
            raise InvalidParams("proposal_threshold exceeds the uint128 range")
        if voting_period > UINT128_MAX - ctx.now:
            raise InvalidParams(
                f"voting_period {voting_period} puts the voting deadline "
                f"past the uint128 range"
            )

        settings = GovernanceSettings(
            org_id=org_id,
            voting_period=voting_period,
            quorum_bp=quorum_bp,
            majority_bp=majority_bp,
            proposal_threshold=proposal_threshold,
        )
        with self._store.transaction():
            self._store.put("settings", org_id, settings)
        return settings

    def get_settings(self, org_id: int) -> Optional[GovernanceSettings]:
        settings = self._store.settings.get(org_id)
        return replace(settings) if settings is not None else None

    def require_settings(self, org_id: int) -> GovernanceSettings:
        settings = self._store.settings.get(org_id)
        if settings is None:
            raise NotFound(f"Governance settings not found for organization {org_id}")
        return settings
