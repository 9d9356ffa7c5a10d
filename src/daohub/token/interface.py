"""Token-balance proof interface.

Organizations reference an external governance token by an opaque
principal. The core never reads it: a prospective member consults the
token off-path, then submits the balance to join_with_token_proof.

TokenBalanceReader is the read surface such a token exposes.
InMemoryToken is a minimal fixed-supply implementation for tests, tools
and simulations; it is not a general-purpose token contract and supports
only the transfers needed to place balances.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class TokenBalanceReader(Protocol):
    """Read surface of a fungible governance token."""

    @property
    def name(self) -> str:
        ...

    @property
    def symbol(self) -> str:
        ...

    @property
    def decimals(self) -> int:
        ...

    @property
    def total_supply(self) -> int:
        ...

    @property
    def token_uri(self) -> Optional[str]:
        ...

    def balance_of(self, account: str) -> int:
        ...


class InMemoryToken:
    """Fixed-supply token held entirely by ``issuer`` at creation."""

    def __init__(
        self,
        name: str,
        symbol: str,
        issuer: str,
        total_supply: int,
        decimals: int = 6,
        token_uri: Optional[str] = None,
    ) -> None:
        if not name.strip() or not symbol.strip():
            raise ValueError("Token name and symbol cannot be empty")
        if total_supply <= 0:
            raise ValueError(f"Total supply must be positive, got {total_supply}")
        self._name = name
        self._symbol = symbol
        self._decimals = decimals
        self._total_supply = total_supply
        self._token_uri = token_uri
        self._balances: dict[str, int] = {issuer: total_supply}

    @property
    def name(self) -> str:
        return self._name

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def decimals(self) -> int:
        return self._decimals

    @property
    def total_supply(self) -> int:
        return self._total_supply

    @property
    def token_uri(self) -> Optional[str]:
        return self._token_uri

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def transfer(self, amount: int, sender: str, recipient: str) -> bool:
        """Move ``amount`` between holders. Returns False if nothing moved."""
        if amount <= 0 or self._balances.get(sender, 0) < amount:
            return False
        self._balances[sender] -= amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        return True


def balance_proof(token: TokenBalanceReader, account: str) -> int:
    """Read the balance a caller would assert when joining by proof."""
    return token.balance_of(account)
