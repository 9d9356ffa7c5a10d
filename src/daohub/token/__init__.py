"""External governance token boundary."""

from daohub.token.interface import InMemoryToken, TokenBalanceReader, balance_proof

__all__ = ["InMemoryToken", "TokenBalanceReader", "balance_proof"]
