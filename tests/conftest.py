"""Shared fixtures: an in-memory market with two funded traders."""

import pytest_asyncio

from ledgers import InMemoryAssetRegistry, InMemoryCurrencyLedger
from market import EventBus, FeePolicy, Marketplace, MemoryStorage

# Smallest currency units per whole unit
UNIT = 10 ** 18

MARKET = "0xMarket"
OWNER = "0xOwner"
SELLER = "0xAddr1"
BUYER = "0xAddr2"
OTHER = "0xAddr3"
FEE_RECEIVER_A = "0xFeeA"
FEE_RECEIVER_B = "0xFeeB"

NOW = 1_700_000_000

class FixedClock:
    """Clock the tests move by hand."""
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

def fee_policy(**overrides) -> FeePolicy:
    values = {
        "percentage": 5,
        "flat_service_fee": 0,
        "receiver_a": FEE_RECEIVER_A,
        "receiver_b": FEE_RECEIVER_B,
    }
    values.update(overrides)
    return FeePolicy(**values)

@pytest_asyncio.fixture
async def clock():
    return FixedClock()

@pytest_asyncio.fixture
async def registry():
    """Asset registry with cards 0, 1 and 2 owned by the seller."""
    registry = InMemoryAssetRegistry()
    for asset_id in range(3):
        registry.mint(SELLER, asset_id)
    return registry

@pytest_asyncio.fixture
async def currency():
    """Currency ledger where both traders hold 100 units and allow the market 50."""
    currency = InMemoryCurrencyLedger()
    for account in (BUYER, OTHER):
        currency.mint(account, 100 * UNIT)
        currency.approve(account, MARKET, 50 * UNIT)
    return currency

@pytest_asyncio.fixture
async def storage():
    return MemoryStorage()

@pytest_asyncio.fixture
async def events():
    return EventBus()

@pytest_asyncio.fixture
async def market(storage, registry, currency, events, clock):
    """A freshly deployed market owned by OWNER."""
    return await Marketplace.deploy(
        storage, registry, currency,
        deployer=OWNER,
        market_address=MARKET,
        fee_policy=fee_policy(),
        events=events,
        clock=clock
    )

@pytest_asyncio.fixture
async def listed(market, registry):
    """Card 1 listed by the seller for 10 units, open to any buyer."""
    registry.approve(SELLER, MARKET, 1)
    return await market.create_offer(SELLER, 1, 10 * UNIT)
