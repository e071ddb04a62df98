"""In-memory ledgers for development and tests.

They follow the usual token-standard rules: an operator may move an asset if
it owns it, holds the per-asset approval or is an approved-for-all operator
of the owner; a spender may move currency up to its allowance.
"""
import logging
from collections import defaultdict
from typing import Dict, Optional, Set, Tuple

from . import TransferReceipt, TransferRejected

logger = logging.getLogger(__name__)


class InMemoryAssetRegistry:
    """Non-fungible asset ownership with per-asset and operator approvals."""

    name = 'assets'

    def __init__(self) -> None:
        self._owners: Dict[int, str] = {}
        self._approvals: Dict[int, str] = {}
        self._operators: Dict[str, Set[str]] = defaultdict(set)
        self._next_id = 0

    def mint(self, owner: str, asset_id: Optional[int] = None) -> int:
        if asset_id is None:
            asset_id = self._next_id
        if asset_id in self._owners:
            raise TransferRejected(f"Asset {asset_id} already minted")
        self._owners[asset_id] = owner
        self._next_id = max(self._next_id, asset_id + 1)
        return asset_id

    def owner_of(self, asset_id: int) -> str:
        try:
            return self._owners[asset_id]
        except KeyError:
            raise TransferRejected(f"Asset {asset_id} does not exist") from None

    def balance_of(self, owner: str) -> int:
        return sum(1 for holder in self._owners.values() if holder == owner)

    def approve(self, owner: str, operator: str, asset_id: int) -> None:
        if self.owner_of(asset_id) != owner:
            raise TransferRejected(f"{owner} does not own asset {asset_id}")
        self._approvals[asset_id] = operator

    def set_approval_for_all(self, owner: str, operator: str, approved: bool = True) -> None:
        if approved:
            self._operators[owner].add(operator)
        else:
            self._operators[owner].discard(operator)

    def get_approved(self, asset_id: int) -> Optional[str]:
        return self._approvals.get(asset_id)

    def is_approved_for_transfer(self, operator: str, asset_id: int) -> bool:
        owner = self.owner_of(asset_id)
        return (
            operator == owner
            or self._approvals.get(asset_id) == operator
            or operator in self._operators[owner]
        )

    def transfer(self, operator: str, sender: str, recipient: str, asset_id: int) -> TransferReceipt:
        if self.owner_of(asset_id) != sender:
            raise TransferRejected(f"Asset {asset_id} is not owned by {sender}")
        if not self.is_approved_for_transfer(operator, asset_id):
            raise TransferRejected(f"{operator} is not approved to transfer asset {asset_id}")

        previous_approval = self._approvals.pop(asset_id, None)
        self._owners[asset_id] = recipient
        logger.debug(f"Asset {asset_id} moved {sender} -> {recipient} by {operator}")
        return TransferReceipt(
            ledger=self.name,
            operator=operator,
            sender=sender,
            recipient=recipient,
            asset_id=asset_id,
            reference=previous_approval,
        )

    def revert(self, receipt: TransferReceipt) -> None:
        if self._owners.get(receipt.asset_id) != receipt.recipient:
            raise TransferRejected(f"Cannot revert transfer of asset {receipt.asset_id}")
        self._owners[receipt.asset_id] = receipt.sender
        if receipt.reference is not None:
            self._approvals[receipt.asset_id] = receipt.reference


class InMemoryCurrencyLedger:
    """Fungible balances with allowances."""

    name = 'currency'

    def __init__(self) -> None:
        self._balances: Dict[str, int] = defaultdict(int)
        self._allowances: Dict[Tuple[str, str], int] = defaultdict(int)

    def mint(self, owner: str, amount: int) -> None:
        self._balances[owner] += amount

    def balance_of(self, owner: str) -> int:
        return self._balances[owner]

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self._allowances[(owner, spender)] = amount

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances[(owner, spender)]

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        if self._balances[sender] < amount:
            raise TransferRejected(f"Insufficient balance for {sender}")
        self._balances[sender] -= amount
        self._balances[recipient] += amount

    def transfer_from(self, spender: str, payer: str, payee: str, amount: int) -> TransferReceipt:
        if amount < 0:
            raise TransferRejected("Transfer amount must not be negative")
        if self._allowances[(payer, spender)] < amount:
            raise TransferRejected(f"Insufficient allowance from {payer} to {spender}")
        if self._balances[payer] < amount:
            raise TransferRejected(f"Insufficient balance for {payer}")

        self._allowances[(payer, spender)] -= amount
        self._balances[payer] -= amount
        self._balances[payee] += amount
        return TransferReceipt(
            ledger=self.name,
            operator=spender,
            sender=payer,
            recipient=payee,
            amount=amount,
        )

    def revert(self, receipt: TransferReceipt) -> None:
        if self._balances[receipt.recipient] < receipt.amount:
            raise TransferRejected(f"Cannot revert transfer to {receipt.recipient}")
        self._balances[receipt.recipient] -= receipt.amount
        self._balances[receipt.sender] += receipt.amount
        self._allowances[(receipt.sender, receipt.operator)] += receipt.amount
