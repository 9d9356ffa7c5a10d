"""Tests for the token-balance proof surface."""

from __future__ import annotations

import pytest

from daohub.service import DaoService
from daohub.token.interface import InMemoryToken, TokenBalanceReader, balance_proof


@pytest.fixture
def token() -> InMemoryToken:
    return InMemoryToken("Guild Token", "GLD", issuer="treasurer", total_supply=1_000)


class TestInMemoryToken:
    def test_metadata(self, token: InMemoryToken) -> None:
        assert isinstance(token, TokenBalanceReader)
        assert (token.name, token.symbol, token.decimals) == ("Guild Token", "GLD", 6)
        assert token.total_supply == 1_000
        assert token.token_uri is None
        assert token.balance_of("treasurer") == 1_000

    def test_transfer(self, token: InMemoryToken) -> None:
        assert token.transfer(300, "treasurer", "carol") is True
        assert token.transfer(5_000, "carol", "dave") is False
        assert token.balance_of("carol") == 300
        assert token.balance_of("treasurer") == 700

    @pytest.mark.parametrize("supply", [0, -1])
    def test_bad_supply(self, supply: int) -> None:
        with pytest.raises(ValueError):
            InMemoryToken("T", "T", issuer="x", total_supply=supply)


class TestBalanceProof:
    def test_join_with_read_balance(self, token: InMemoryToken) -> None:
        token.transfer(250, "treasurer", "carol")
        service = DaoService()
        service.create_organization("alice", "Guild", "", "GLD", 100, now=1)
        result = service.join_with_token_proof(
            "carol", 1, balance_proof(token, "carol"), now=2,
        )
        assert result.success
        assert service.get_member(1, "carol").voting_power == 250
