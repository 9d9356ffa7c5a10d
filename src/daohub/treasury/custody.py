"""Asset custody interface - how treasury funds actually move.

The treasury ledger never moves assets itself. It calls a custody backend
through the AssetCustody protocol and only updates its own balance after
the backend reports success. Swapping the backend requires zero changes
to the ledger.

Contract every backend must honour:
- ``transfer`` is atomic: it either moves the full amount and returns
  True, or moves nothing and returns False.
- It never moves a partial amount.
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable


CUSTODIAL_PREFIX = "dao-treasury:"


def custodial_account(org_id: int) -> str:
    """Account that holds an organization's treasury assets."""
    return f"{CUSTODIAL_PREFIX}{org_id}"


def is_custodial_account(account: str) -> bool:
    return account.startswith(CUSTODIAL_PREFIX)


@runtime_checkable
class AssetCustody(Protocol):
    """Transfer primitive for the custodial asset."""

    def transfer(self, amount: int, sender: str, recipient: str) -> bool:
        """Move ``amount`` from ``sender`` to ``recipient``.

        Returns True on success, False if nothing moved.
        """
        ...


class InMemoryCustody:
    """Account-balance custody backend held in process memory.

    Suitable for tests, simulations and the CLI. Balances are plain
    non-negative integers keyed by account.

    Usage:
        custody = InMemoryCustody()
        custody.credit("alice", 500)
        custody.transfer(200, "alice", custodial_account(1))
    """

    def __init__(self, balances: dict[str, int] | None = None) -> None:
        self._balances: dict[str, int] = dict(balances or {})
        self._lock = threading.Lock()

    def credit(self, account: str, amount: int) -> None:
        """Mint ``amount`` into ``account`` (funding outside the protocol)."""
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive, got {amount}")
        with self._lock:
            self._balances[account] = self._balances.get(account, 0) + amount

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def transfer(self, amount: int, sender: str, recipient: str) -> bool:
        if amount <= 0 or sender == recipient:
            return False
        with self._lock:
            available = self._balances.get(sender, 0)
            if available < amount:
                return False
            self._balances[sender] = available - amount
            self._balances[recipient] = self._balances.get(recipient, 0) + amount
        return True

    def to_records(self) -> dict[str, int]:
        return dict(self._balances)
