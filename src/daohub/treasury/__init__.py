"""Treasury subsystem - custodial balance ledger and custody backends."""

from daohub.treasury.custody import (
    AssetCustody,
    InMemoryCustody,
    custodial_account,
    is_custodial_account,
)
from daohub.treasury.ledger import TreasuryLedger, TreasuryMovement

__all__ = [
    "AssetCustody",
    "InMemoryCustody",
    "TreasuryLedger",
    "TreasuryMovement",
    "custodial_account",
    "is_custodial_account",
]
