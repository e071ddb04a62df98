"""Trading engine: the listing state machine.

The engine is stateless. Everything it reads or writes lives in
:class:`~market.storage.MarketStorage`, and the assets and currency it moves
live on the two external ledgers. Every mutating operation runs under the
per-asset lock shared by all logic versions, front-loads its validation and
only then touches the ledgers and storage, so a rejected call changes nothing.

Validation order for listing mutations: pause gate, listing existence,
caller authorization, listing state, operation-specific checks, service fee.
"""
import asyncio
import logging
import time
from typing import Callable, List, Optional, Tuple

from ledgers import AssetRegistry, CurrencyLedger, LedgerError, TransferReceipt
from .access import AccessControl, DEFAULT_ADMIN_ROLE
from .errors import (
    AlreadyRetired, AlreadySold, DuplicateAsset, InsufficientServiceFee,
    InvalidPrice, NotAuthorizedToList, NotFound, NotOwner, NotRetired,
    NotSeller, OfferExpired, OverPayment, RestrictedBuyer, SettlementError,
    Unauthorized, UnderPayment,
)
from .events import (
    EventBus, FeePercentageChanged, ListingChanged, ListingCreated,
    ListingRestored, ListingRetired, ListingReturned, ListingSold,
)
from .locks import KeyedLock
from .models import FeePolicy, MarketListing
from .pause import PauseGate
from .storage import LAYOUT_VERSION, MarketStorage

logger = logging.getLogger(__name__)


class MarketLogicV1:
    """First release of the market logic."""

    name = 'MarketLogicV1'
    storage_layout = LAYOUT_VERSION

    def __init__(
        self,
        storage: MarketStorage,
        asset_registry: AssetRegistry,
        currency_ledger: CurrencyLedger,
        *,
        market_address: str,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
        locks: Optional[KeyedLock] = None,
        admin_lock: Optional[asyncio.Lock] = None
    ):
        self.storage = storage
        self.asset_registry = asset_registry
        self.currency_ledger = currency_ledger
        self.market_address = market_address
        self.events = events or EventBus()
        self.clock = clock
        self.locks = locks if locks is not None else KeyedLock()
        # Serializes fee policy and pause flag read-modify-write cycles
        self.admin_lock = admin_lock if admin_lock is not None else asyncio.Lock()
        self.access = AccessControl(storage, self.events)
        self.pause_gate = PauseGate(storage, self.access, self.events, self.admin_lock)

    # Listing operations

    async def create_offer(
        self,
        caller: str,
        asset_id: int,
        price: int,
        expiry: int = 0,
        restricted_buyer: Optional[str] = None,
        service_fee: int = 0
    ) -> MarketListing:
        """List an asset the caller owns and has approved the market to move.

        Raises:
            SystemPaused: The market is paused
            DuplicateAsset: The asset id has been listed before
            NotOwner: Caller does not own the asset
            NotAuthorizedToList: The market holds no transfer approval
            InvalidPrice: Price is zero
            InsufficientServiceFee: service_fee below the flat service fee
        """
        async with self.locks(asset_id):
            await self.pause_gate.require_active()

            try:
                await self.storage.get_listing(asset_id)
            except NotFound:
                pass
            else:
                raise DuplicateAsset(asset_id)

            if self._ledger_call(self.asset_registry.owner_of, asset_id) != caller:
                raise NotOwner()
            if not self._ledger_call(
                self.asset_registry.is_approved_for_transfer, self.market_address, asset_id
            ):
                raise NotAuthorizedToList()
            self._check_price(price)
            await self._check_service_fee(service_fee)

            listing = await self.storage.insert_listing(MarketListing(
                asset_id=asset_id,
                seller=caller,
                price=price,
                expiry=expiry,
                restricted_buyer=restricted_buyer,
            ))
            await self.storage.add_service_fees(service_fee)

        logger.info(f"Card {asset_id} listed by {caller} for {price}")
        await self.events.publish(ListingCreated(
            asset_id=asset_id,
            seller=caller,
            price=price,
            expiry=expiry,
            restricted_buyer=restricted_buyer,
        ))
        return listing

    async def change_offer(
        self,
        caller: str,
        asset_id: int,
        price: int,
        expiry: int = 0,
        restricted_buyer: Optional[str] = None,
        service_fee: int = 0
    ) -> MarketListing:
        """Replace price, expiry and restricted buyer of the caller's listing."""
        async with self.locks(asset_id):
            await self.pause_gate.require_active()
            listing = await self.storage.get_listing(asset_id)
            self._check_seller(listing, caller)
            if listing.sold:
                raise AlreadySold()
            self._check_price(price)
            await self._check_service_fee(service_fee)

            def apply(record: MarketListing) -> None:
                record.price = price
                record.expiry = expiry
                record.restricted_buyer = restricted_buyer

            listing = await self.storage.update_listing(asset_id, apply, listing.revision)
            await self.storage.add_service_fees(service_fee)

        logger.info(f"Card {asset_id} offer changed by {caller}")
        await self.events.publish(ListingChanged(
            asset_id=asset_id,
            seller=caller,
            price=price,
            expiry=expiry,
            restricted_buyer=restricted_buyer,
        ))
        return listing

    async def retire_offer(self, caller: str, asset_id: int, service_fee: int = 0) -> MarketListing:
        """Take the caller's listing off the market; fails if already retired."""
        async with self.locks(asset_id):
            await self.pause_gate.require_active()
            listing = await self.storage.get_listing(asset_id)
            self._check_seller(listing, caller)
            if listing.sold:
                raise AlreadySold()
            if listing.deleted:
                raise AlreadyRetired()
            await self._check_service_fee(service_fee)

            listing = await self.storage.update_listing(asset_id, _set_deleted(True), listing.revision)
            await self.storage.add_service_fees(service_fee)

        logger.info(f"Card {asset_id} retired by {caller}")
        await self.events.publish(ListingRetired(asset_id=asset_id, seller=caller))
        return listing

    async def re_offer(self, caller: str, asset_id: int, service_fee: int = 0) -> MarketListing:
        """Put a retired listing back on the market, fields unchanged."""
        async with self.locks(asset_id):
            await self.pause_gate.require_active()
            listing = await self.storage.get_listing(asset_id)
            self._check_seller(listing, caller)
            if listing.sold:
                raise AlreadySold()
            if not listing.deleted:
                raise NotRetired()
            await self._check_service_fee(service_fee)

            listing = await self.storage.update_listing(asset_id, _set_deleted(False), listing.revision)
            await self.storage.add_service_fees(service_fee)

        logger.info(f"Card {asset_id} offered again by {caller}")
        await self.events.publish(ListingRestored(asset_id=asset_id, seller=caller))
        return listing

    async def return_card(self, caller: str, asset_id: int, service_fee: int = 0) -> MarketListing:
        """Retire a listing and make sure the seller holds the asset.

        Usable by the seller or by a DEFAULT_ADMIN_ROLE holder. If the asset
        is held by anyone but the seller it is transferred back first.
        """
        async with self.locks(asset_id):
            await self.pause_gate.require_active()
            listing = await self.storage.get_listing(asset_id)
            if caller != listing.seller and not await self.access.has_role(DEFAULT_ADMIN_ROLE, caller):
                raise Unauthorized("Caller is neither the seller nor an administrator")
            if listing.sold:
                raise AlreadySold()
            await self._check_service_fee(service_fee)

            holder = self._ledger_call(self.asset_registry.owner_of, asset_id)
            receipts = []
            if holder != listing.seller:
                receipts.append(self._transfer_leg(
                    self.asset_registry.transfer,
                    self.market_address, holder, listing.seller, asset_id
                ))

            try:
                listing = await self.storage.update_listing(asset_id, _set_deleted(True), listing.revision)
            except Exception:
                self._revert(receipts)
                raise
            await self.storage.add_service_fees(service_fee)

        logger.info(f"Card {asset_id} returned to {listing.seller} by {caller}")
        await self.events.publish(ListingReturned(
            asset_id=asset_id,
            seller=listing.seller,
            returned_by=caller,
        ))
        return listing

    async def sell_offer(self, caller: str, asset_id: int, amount_sent: int) -> MarketListing:
        """Buy a listing for exactly ``price + fee``.

        The price goes to the seller, the fee is split between the two fee
        receivers and the asset moves from the seller to the caller. Either
        all of that happens and the listing is marked sold, or nothing does.

        Raises:
            NotFound, AlreadySold, AlreadyRetired, OfferExpired, RestrictedBuyer,
            UnderPayment, OverPayment, SettlementError
        """
        async with self.locks(asset_id):
            await self.pause_gate.require_active()
            listing = await self.storage.get_listing(asset_id)
            if listing.sold:
                raise AlreadySold()
            if listing.deleted:
                raise AlreadyRetired()
            if listing.is_expired(self.clock()):
                raise OfferExpired()
            if listing.restricted_buyer is not None and caller != listing.restricted_buyer:
                raise RestrictedBuyer()

            policy = await self.storage.get_fee_policy()
            total, fee = policy.quote_total(listing.price)
            if amount_sent < total:
                raise UnderPayment(total, amount_sent)
            if amount_sent > total:
                raise OverPayment(total, amount_sent)

            self._preflight_sale(listing, caller, total)
            receipts = self._settle_sale(listing, caller, fee, policy)

            def mark_sold(record: MarketListing) -> None:
                record.sold = True

            try:
                listing = await self.storage.update_listing(asset_id, mark_sold, listing.revision)
            except Exception:
                self._revert(receipts)
                raise

        logger.info(f"Card {asset_id} sold to {caller} for {total} (fee {fee})")
        await self.events.publish(ListingSold(asset_id=asset_id, buyer=caller, price=listing.price))
        return listing

    # Queries

    async def get_listing(self, asset_id: int) -> MarketListing:
        return await self.storage.get_listing(asset_id)

    async def list_active(self) -> List[int]:
        """Asset ids currently for sale (neither sold nor retired)."""
        return await self.storage.active_ids()

    async def list_all_detailed(self) -> List[MarketListing]:
        """Every listing ever created, sold and retired ones included."""
        return await self.storage.all_listings()

    async def quote_total(self, price: int) -> Tuple[int, int]:
        return (await self.storage.get_fee_policy()).quote_total(price)

    async def get_fee_policy(self) -> FeePolicy:
        return await self.storage.get_fee_policy()

    async def service_fees_collected(self) -> int:
        return await self.storage.service_fees_collected()

    # Fee administration

    async def set_fee_percentage(self, caller: str, value: int) -> FeePolicy:
        async with self.admin_lock:
            await self.pause_gate.require_active()
            await self.access.check_role(DEFAULT_ADMIN_ROLE, caller)
            policy = await self.storage.update_fee_policy(
                lambda current: current.with_percentage(value)
            )

        logger.info(f"Fee percentage set to {value} by {caller}")
        await self.events.publish(FeePercentageChanged(percentage=value, account=caller))
        return policy

    async def set_fee_bounds(self, caller: str, min_percentage: int, max_percentage: int) -> FeePolicy:
        async with self.admin_lock:
            await self.pause_gate.require_active()
            await self.access.check_role(DEFAULT_ADMIN_ROLE, caller)
            policy = await self.storage.update_fee_policy(
                lambda current: current.with_bounds(min_percentage, max_percentage)
            )

        logger.info(f"Fee bounds set to [{min_percentage}, {max_percentage}] by {caller}")
        return policy

    async def set_fee_receivers(
        self,
        caller: str,
        receiver_a: str,
        receiver_b: str,
        receiver_a_share: Optional[int] = None
    ) -> FeePolicy:
        async with self.admin_lock:
            await self.pause_gate.require_active()
            await self.access.check_role(DEFAULT_ADMIN_ROLE, caller)
            policy = await self.storage.update_fee_policy(
                lambda current: current.with_receivers(receiver_a, receiver_b, receiver_a_share)
            )

        logger.info(f"Fee receivers set to {receiver_a}/{receiver_b} by {caller}")
        return policy

    async def set_service_fee(self, caller: str, amount: int) -> FeePolicy:
        async with self.admin_lock:
            await self.pause_gate.require_active()
            await self.access.check_role(DEFAULT_ADMIN_ROLE, caller)
            policy = await self.storage.update_fee_policy(
                lambda current: current.with_service_fee(amount)
            )

        logger.info(f"Flat service fee set to {amount} by {caller}")
        return policy

    # Pause gate and roles

    async def pause(self, caller: str) -> None:
        await self.pause_gate.pause(caller)

    async def unpause(self, caller: str) -> None:
        await self.pause_gate.unpause(caller)

    async def is_paused(self) -> bool:
        return await self.pause_gate.is_paused()

    async def has_role(self, role: str, principal: str) -> bool:
        return await self.access.has_role(role, principal)

    async def grant_role(self, caller: str, role: str, principal: str) -> bool:
        return await self.access.grant_role(caller, role, principal)

    async def revoke_role(self, caller: str, role: str, principal: str) -> bool:
        return await self.access.revoke_role(caller, role, principal)

    async def renounce_role(self, caller: str, role: str) -> bool:
        return await self.access.renounce_role(caller, role, caller)

    # Helpers

    @staticmethod
    def _check_seller(listing: MarketListing, caller: str) -> None:
        if listing.seller != caller:
            raise NotSeller()

    @staticmethod
    def _check_price(price: int) -> None:
        if price <= 0:
            raise InvalidPrice()

    async def _check_service_fee(self, service_fee: int) -> None:
        required = (await self.storage.get_fee_policy()).flat_service_fee
        if service_fee < required:
            raise InsufficientServiceFee(required, service_fee)

    @staticmethod
    def _ledger_call(method, *args):
        try:
            return method(*args)
        except LedgerError as e:
            logger.error(f"Ledger query failed: {e}")
            raise SettlementError(f"Ledger query failed: {e}") from e

    def _preflight_sale(self, listing: MarketListing, buyer: str, total: int) -> None:
        """Check every precondition the ledgers will enforce, before moving anything."""
        if self._ledger_call(self.asset_registry.owner_of, listing.asset_id) != listing.seller:
            raise SettlementError("Seller no longer owns the card")
        if not self._ledger_call(
            self.asset_registry.is_approved_for_transfer, self.market_address, listing.asset_id
        ):
            raise SettlementError("Market is no longer approved to transfer the card")
        if self._ledger_call(self.currency_ledger.allowance, buyer, self.market_address) < total:
            raise SettlementError("Insufficient allowance for the market")
        if self._ledger_call(self.currency_ledger.balance_of, buyer) < total:
            raise SettlementError("Insufficient balance")

    def _settle_sale(
        self,
        listing: MarketListing,
        buyer: str,
        fee: int,
        policy: FeePolicy
    ) -> List[TransferReceipt]:
        share_a, share_b = policy.split_fee(fee)
        legs = [
            (self.currency_ledger.transfer_from,
             (self.market_address, buyer, listing.seller, listing.price)),
        ]
        if share_a:
            legs.append((self.currency_ledger.transfer_from,
                         (self.market_address, buyer, policy.receiver_a, share_a)))
        if share_b:
            legs.append((self.currency_ledger.transfer_from,
                         (self.market_address, buyer, policy.receiver_b, share_b)))
        legs.append((self.asset_registry.transfer,
                     (self.market_address, listing.seller, buyer, listing.asset_id)))

        receipts: List[TransferReceipt] = []
        for method, args in legs:
            try:
                receipts.append(self._transfer_leg(method, *args))
            except SettlementError:
                self._revert(receipts)
                raise
        return receipts

    @staticmethod
    def _transfer_leg(method, *args) -> TransferReceipt:
        try:
            return method(*args)
        except LedgerError as e:
            logger.warning(f"Transfer rejected: {e}")
            raise SettlementError(f"Transfer rejected: {e}") from e

    def _revert(self, receipts: List[TransferReceipt]) -> None:
        ledgers = {
            getattr(self.asset_registry, 'name', 'assets'): self.asset_registry,
            getattr(self.currency_ledger, 'name', 'currency'): self.currency_ledger,
        }
        for receipt in reversed(receipts):
            try:
                ledgers[receipt.ledger].revert(receipt)
            except LedgerError as e:
                logger.critical(f"Failed to revert {receipt}: {e}")
                raise SettlementError(f"Settlement could not be reverted: {e}") from e
            logger.warning(f"Reverted {receipt.ledger} transfer {receipt.sender} -> {receipt.recipient}")


def _set_deleted(value: bool):
    def apply(record: MarketListing) -> None:
        record.deleted = value
    return apply
