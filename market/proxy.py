"""Upgradeable market deployment.

:class:`Marketplace` is the stable handle callers use. It owns the storage,
the ledger clients, the event bus and the market locks, and forwards every
other attribute to the active logic version. Upgrading swaps only the logic
object; storage is neither copied nor rewritten.
"""
import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Type

from ledgers import AssetRegistry, CurrencyLedger
from .access import AccessControl, UPGRADER_ROLE
from .engine import MarketLogicV1
from .engine_v2 import MarketLogicV2
from .errors import AlreadyInitialized, InvalidImplementation
from .events import EventBus, Upgraded
from .locks import KeyedLock
from .models import FeePolicy
from .storage import MarketStorage

logger = logging.getLogger(__name__)

IMPLEMENTATIONS: Dict[str, Type[MarketLogicV1]] = {
    MarketLogicV1.name: MarketLogicV1,
    MarketLogicV2.name: MarketLogicV2,
}

DEFAULT_IMPLEMENTATION = MarketLogicV1.name


class Marketplace:
    """Stable entry point delegating to the active logic version."""

    def __init__(
        self,
        storage: MarketStorage,
        asset_registry: AssetRegistry,
        currency_ledger: CurrencyLedger,
        *,
        market_address: str,
        implementation: str = DEFAULT_IMPLEMENTATION,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time
    ):
        self.storage = storage
        self.asset_registry = asset_registry
        self.currency_ledger = currency_ledger
        self.market_address = market_address
        self.events = events or EventBus()
        self.clock = clock
        self.locks = KeyedLock()
        self.admin_lock = asyncio.Lock()
        self._upgrade_lock = asyncio.Lock()
        self._logic = self._build(resolve_implementation(implementation))

    @classmethod
    async def deploy(
        cls,
        storage: MarketStorage,
        asset_registry: AssetRegistry,
        currency_ledger: CurrencyLedger,
        *,
        deployer: str,
        market_address: str,
        fee_policy: FeePolicy,
        implementation: str = DEFAULT_IMPLEMENTATION,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time
    ) -> "Marketplace":
        """Initialize empty storage and return a market on top of it.

        The deployer receives every built-in role.

        Raises:
            AlreadyInitialized: The storage already belongs to a deployment
            OutOfBounds: The fee policy violates its own bounds
        """
        if await storage.is_initialized():
            raise AlreadyInitialized()
        resolve_implementation(implementation)
        fee_policy.validate_bounds()

        market = cls(
            storage, asset_registry, currency_ledger,
            market_address=market_address,
            implementation=implementation,
            events=events,
            clock=clock,
        )
        await storage.set_fee_policy(fee_policy)
        await storage.set_paused(False)
        await AccessControl(storage, market.events).seed(deployer)
        await storage.set_implementation(implementation)

        logger.info(f"Market deployed by {deployer} with {implementation}")
        return market

    @classmethod
    async def attach(
        cls,
        storage: MarketStorage,
        asset_registry: AssetRegistry,
        currency_ledger: CurrencyLedger,
        *,
        market_address: str,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time
    ) -> "Marketplace":
        """Resume a deployment from initialized storage with its persisted logic version."""
        implementation = await storage.get_implementation()
        if implementation is None:
            raise LookupError("Storage holds no market deployment")
        logger.info(f"Attaching to market running {implementation}")
        return cls(
            storage, asset_registry, currency_ledger,
            market_address=market_address,
            implementation=implementation,
            events=events,
            clock=clock,
        )

    def _build(self, logic_cls: Type[MarketLogicV1]) -> MarketLogicV1:
        return logic_cls(
            self.storage,
            self.asset_registry,
            self.currency_ledger,
            market_address=self.market_address,
            events=self.events,
            clock=self.clock,
            locks=self.locks,
            admin_lock=self.admin_lock,
        )

    @property
    def implementation(self) -> str:
        return self._logic.name

    @property
    def logic(self) -> MarketLogicV1:
        return self._logic

    async def upgrade_to(self, caller: str, implementation: str) -> None:
        """Replace the active logic version.

        Raises:
            MissingRole: Caller does not hold UPGRADER_ROLE
            InvalidImplementation: Unknown, incompatible or already active implementation
        """
        async with self._upgrade_lock:
            await AccessControl(self.storage).check_role(UPGRADER_ROLE, caller)

            logic_cls = resolve_implementation(implementation)
            if logic_cls.storage_layout != self.storage.layout_version:
                raise InvalidImplementation(
                    f"{implementation} expects storage layout {logic_cls.storage_layout}, "
                    f"storage is at {self.storage.layout_version}"
                )
            if logic_cls.name == self._logic.name:
                raise InvalidImplementation(f"{implementation} is already active")

            new_logic = self._build(logic_cls)
            await self.storage.set_implementation(logic_cls.name)
            previous, self._logic = self._logic.name, new_logic

        logger.info(f"Market upgraded from {previous} to {logic_cls.name} by {caller}")
        await self.events.publish(Upgraded(implementation=logic_cls.name))

    def __getattr__(self, name: str):
        # Only reached for attributes the proxy itself does not define
        if name.startswith('_'):
            raise AttributeError(name)
        return getattr(self._logic, name)


def resolve_implementation(implementation) -> Type[MarketLogicV1]:
    """Map an implementation name (or class) to a registered logic class."""
    if isinstance(implementation, type):
        logic_cls = implementation
    else:
        logic_cls = IMPLEMENTATIONS.get(implementation)
        if logic_cls is None:
            raise InvalidImplementation(f"Unknown implementation {implementation!r}")

    if not issubclass(logic_cls, MarketLogicV1) or not hasattr(logic_cls, 'storage_layout'):
        raise InvalidImplementation(f"{implementation!r} is not a market logic")
    return logic_cls
