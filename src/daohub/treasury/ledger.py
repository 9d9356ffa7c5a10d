"""Treasury Ledger - per-organization custodial balance.

Mutations:
    deposit   caller -> custody account, balance += amount
    withdraw  custody account -> recipient, balance -= amount (admin only)

Each mutation is all-or-nothing. The new balance is computed (and checked
for overflow/underflow) before the external transfer is attempted, and
the ledger is written only after the transfer reports success. If the
transfer fails, the ledger is untouched.

If the surrounding call aborts after a successful transfer, the service
layer calls ``compensate`` with the returned TreasuryMovement to move the
assets back.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from daohub.context import CallContext
from daohub.errors import InsufficientBalance, InvalidParams, NotFound
from daohub.engine.arithmetic import UINT128_MAX, checked_add, checked_sub
from daohub.governance.membership import MembershipLedger
from daohub.governance.org_registry import OrgRegistryEngine
from daohub.models.governance import Treasury
from daohub.persistence.state_store import StateStore
from daohub.treasury.custody import (
    AssetCustody,
    custodial_account,
    is_custodial_account,
)


@dataclass(frozen=True)
class TreasuryMovement:
    """A completed custody transfer and the balance it produced."""
    org_id: int
    sender: str
    recipient: str
    amount: int
    balance_after: int


class TreasuryLedger:
    """Deposit and withdrawal accounting over an AssetCustody backend."""

    def __init__(
        self,
        store: StateStore,
        registry: OrgRegistryEngine,
        membership: MembershipLedger,
        custody: AssetCustody,
    ) -> None:
        self._store = store
        self._registry = registry
        self._membership = membership
        self._custody = custody

    def deposit(
        self,
        ctx: CallContext,
        org_id: int,
        amount: int,
    ) -> TreasuryMovement:
        """Move ``amount`` from the caller into the organization's custody.

        Any account may deposit; membership is not required.

        Raises:
            NotFound, DaoInactive: Organization missing or inactive.
            InvalidParams: amount <= 0, or the caller is a custodial
                treasury account.
            InsufficientBalance: The custody transfer failed.
        """
        self._registry.require_active(org_id)
        self._validate_amount(amount)
        if is_custodial_account(ctx.caller):
            raise InvalidParams(
                f"Custodial account {ctx.caller} cannot deposit into a treasury"
            )
        treasury = self._require_treasury(org_id)
        new_balance = checked_add(treasury.balance, amount)

        sender, recipient = ctx.caller, custodial_account(org_id)
        if not self._custody.transfer(amount, sender, recipient):
            raise InsufficientBalance(
                f"Asset transfer of {amount} from {sender} to organization "
                f"{org_id} failed"
            )
        with self._store.transaction():
            self._store.put("treasuries", org_id, replace(
                treasury, balance=new_balance, last_updated=ctx.now,
            ))
        return TreasuryMovement(org_id, sender, recipient, amount, new_balance)

    def withdraw(
        self,
        ctx: CallContext,
        org_id: int,
        recipient: str,
        amount: int,
    ) -> TreasuryMovement:
        """Pay ``amount`` out of the organization's custody to ``recipient``.

        Raises:
            NotFound, DaoInactive: Organization missing or inactive.
            Unauthorized: Caller is not an administrator.
            InvalidParams: amount <= 0, or the recipient is empty or a
                custodial treasury account.
            InsufficientBalance: Balance below amount, or the custody
                transfer failed.
        """
        self._registry.require_active(org_id)
        self._membership.require_admin(org_id, ctx.caller)
        self._validate_amount(amount)
        if not recipient or not recipient.strip():
            raise InvalidParams("Withdrawal recipient cannot be empty")
        if is_custodial_account(recipient):
            raise InvalidParams(
                f"Withdrawal recipient {recipient} is a custodial treasury account"
            )
        treasury = self._require_treasury(org_id)
        if treasury.balance < amount:
            raise InsufficientBalance(
                f"Treasury balance {treasury.balance} of organization {org_id} "
                f"is below withdrawal amount {amount}"
            )
        new_balance = checked_sub(treasury.balance, amount)

        sender = custodial_account(org_id)
        if not self._custody.transfer(amount, sender, recipient):
            raise InsufficientBalance(
                f"Asset transfer of {amount} from organization {org_id} to "
                f"{recipient} failed"
            )
        with self._store.transaction():
            self._store.put("treasuries", org_id, replace(
                treasury, balance=new_balance, last_updated=ctx.now,
            ))
        return TreasuryMovement(org_id, sender, recipient, amount, new_balance)

    def compensate(self, movement: TreasuryMovement) -> bool:
        """Reverse a completed transfer whose ledger write was rolled back."""
        return self._custody.transfer(
            movement.amount, movement.recipient, movement.sender,
        )

    def get_treasury(self, org_id: int) -> Optional[Treasury]:
        treasury = self._store.treasuries.get(org_id)
        return replace(treasury) if treasury is not None else None

    def _require_treasury(self, org_id: int) -> Treasury:
        treasury = self._store.treasuries.get(org_id)
        if treasury is None:
            raise NotFound(f"Treasury not found for organization {org_id}")
        return treasury

    @staticmethod
    def _validate_amount(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidParams("Amount must be an integer")
        if amount <= 0:
            raise InvalidParams(f"Amount must be > 0, got {amount}")
        if amount > UINT128_MAX:
            raise InvalidParams("Amount exceeds the uint128 range")
