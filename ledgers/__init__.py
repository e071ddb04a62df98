"""External ledgers consumed by the market.

The market never holds custody. It triggers transfers on two independently
owned ledgers using approvals granted beforehand:

- the asset registry (who owns each asset id, who may move it)
- the currency ledger (balances and allowances of the trade currency)

Every transfer returns a :class:`TransferReceipt` that the ledger can revert,
which is how a multi-leg settlement is undone when a later leg fails.
"""
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


class LedgerError(Exception):
    """Base exception for ledger failures."""
    pass

class TransferRejected(LedgerError):
    """The ledger refused a transfer (missing approval, allowance or funds)."""
    pass


@dataclass(frozen=True)
class TransferReceipt:
    """Record of one completed transfer."""
    ledger: str
    operator: str
    sender: str
    recipient: str
    amount: int = 0
    asset_id: Optional[int] = None
    reference: Optional[str] = None


@runtime_checkable
class AssetRegistry(Protocol):
    def owner_of(self, asset_id: int) -> str: ...

    def is_approved_for_transfer(self, operator: str, asset_id: int) -> bool: ...

    def transfer(self, operator: str, sender: str, recipient: str, asset_id: int) -> TransferReceipt: ...

    def revert(self, receipt: TransferReceipt) -> None: ...


@runtime_checkable
class CurrencyLedger(Protocol):
    def balance_of(self, owner: str) -> int: ...

    def allowance(self, owner: str, spender: str) -> int: ...

    def transfer_from(self, spender: str, payer: str, payee: str, amount: int) -> TransferReceipt: ...

    def revert(self, receipt: TransferReceipt) -> None: ...


from .memory import InMemoryAssetRegistry, InMemoryCurrencyLedger  # noqa: E402

__all__ = [
    'AssetRegistry', 'CurrencyLedger', 'TransferReceipt',
    'LedgerError', 'TransferRejected',
    'InMemoryAssetRegistry', 'InMemoryCurrencyLedger',
]
