"""Tests for fee arithmetic and fee administration."""

import asyncio
import pytest
import pytest_asyncio

from market import FeePolicy, Marketplace, MemoryStorage, MissingRole, OutOfBounds, SystemPaused
from market.events import FeePercentageChanged

from .conftest import FEE_RECEIVER_A, FEE_RECEIVER_B, MARKET, OWNER, SELLER, UNIT, fee_policy

def test_quote_total_five_percent():
    """Price 10 at 5% needs exactly 10.5 units."""
    total, fee = fee_policy().quote_total(10 * UNIT)
    assert fee == UNIT // 2
    assert total == 10 * UNIT + UNIT // 2

def test_quote_total_floors_fee():
    total, fee = fee_policy(percentage=5).quote_total(19)
    assert fee == 0
    assert total == 19

    total, fee = fee_policy(percentage=5).quote_total(39)
    assert fee == 1
    assert total == 40

def test_zero_percentage():
    assert fee_policy(percentage=0).quote_total(1234) == (1234, 0)

def test_split_fee_sums_to_fee():
    policy = fee_policy()
    for fee in (0, 1, 7, 10, UNIT // 2 + 1):
        share_a, share_b = policy.split_fee(fee)
        assert share_a + share_b == fee
        assert share_a <= share_b

def test_split_fee_uneven_share():
    policy = fee_policy(receiver_a_share=70)
    assert policy.split_fee(100) == (70, 30)
    assert policy.split_fee(0) == (0, 0)

def test_validate_bounds():
    with pytest.raises(OutOfBounds):
        fee_policy(percentage=30, max_percentage=20).validate_bounds()
    with pytest.raises(OutOfBounds):
        fee_policy(min_percentage=50, max_percentage=10).validate_bounds()
    with pytest.raises(OutOfBounds):
        fee_policy(max_percentage=101).validate_bounds()
    assert fee_policy(percentage=20, max_percentage=20).validate_bounds().percentage == 20

def test_with_percentage_returns_copy():
    policy = fee_policy()
    updated = policy.with_percentage(10)
    assert updated.percentage == 10
    assert policy.percentage == 5

@pytest.mark.asyncio
async def test_set_fee_percentage(market, events):
    policy = await market.set_fee_percentage(OWNER, 10)
    assert policy.percentage == 10
    assert (await market.get_fee_policy()).percentage == 10
    assert await market.quote_total(10 * UNIT) == (11 * UNIT, UNIT)

    changed = events.of_type(FeePercentageChanged)
    assert changed[-1].percentage == 10
    assert changed[-1].account == OWNER

@pytest.mark.asyncio
async def test_set_fee_percentage_requires_admin(market):
    with pytest.raises(MissingRole):
        await market.set_fee_percentage(SELLER, 10)
    assert (await market.get_fee_policy()).percentage == 5

@pytest.mark.asyncio
async def test_set_fee_percentage_out_of_bounds(market):
    await market.set_fee_bounds(OWNER, 1, 20)
    with pytest.raises(OutOfBounds):
        await market.set_fee_percentage(OWNER, 21)
    with pytest.raises(OutOfBounds):
        await market.set_fee_percentage(OWNER, 0)
    assert (await market.get_fee_policy()).percentage == 5

@pytest.mark.asyncio
async def test_set_fee_bounds_must_contain_percentage(market):
    with pytest.raises(OutOfBounds):
        await market.set_fee_bounds(OWNER, 10, 20)
    policy = await market.get_fee_policy()
    assert (policy.min_percentage, policy.max_percentage) == (0, 100)

@pytest.mark.asyncio
async def test_fee_setters_blocked_while_paused(market):
    await market.pause(OWNER)
    with pytest.raises(SystemPaused):
        await market.set_fee_percentage(OWNER, 10)
    with pytest.raises(SystemPaused):
        await market.set_service_fee(OWNER, 1)

@pytest.mark.asyncio
async def test_set_fee_receivers(market):
    policy = await market.set_fee_receivers(OWNER, "0xNewA", "0xNewB", 60)
    assert (policy.receiver_a, policy.receiver_b, policy.receiver_a_share) == ("0xNewA", "0xNewB", 60)

    policy = await market.set_fee_receivers(OWNER, FEE_RECEIVER_A, FEE_RECEIVER_B)
    assert policy.receiver_a_share == 60

@pytest.mark.asyncio
async def test_set_service_fee(market):
    policy = await market.set_service_fee(OWNER, 1_200_000_000_000_000)
    assert isinstance(policy, FeePolicy)
    assert (await market.get_fee_policy()).flat_service_fee == 1_200_000_000_000_000

@pytest.mark.asyncio
async def test_fee_setters_reject_bad_values(market):
    with pytest.raises(OutOfBounds):
        await market.set_fee_receivers(OWNER, "0xNewA", "0xNewB", 150)
    with pytest.raises(OutOfBounds):
        await market.set_fee_receivers(OWNER, "0xNewA", "0xNewB", -1)
    with pytest.raises(OutOfBounds):
        await market.set_service_fee(OWNER, -1)

    policy = await market.get_fee_policy()
    assert (policy.receiver_a, policy.receiver_a_share) == (FEE_RECEIVER_A, 50)
    assert policy.flat_service_fee == 0

class YieldingStorage(MemoryStorage):
    """Memory storage that gives up the loop on every fee policy access."""

    async def get_fee_policy(self) -> FeePolicy:
        await asyncio.sleep(0)
        return await super().get_fee_policy()

    async def set_fee_policy(self, policy: FeePolicy) -> None:
        await asyncio.sleep(0)
        await super().set_fee_policy(policy)

@pytest_asyncio.fixture
async def yielding_market(registry, currency, clock):
    return await Marketplace.deploy(
        YieldingStorage(), registry, currency,
        deployer=OWNER,
        market_address=MARKET,
        fee_policy=fee_policy(),
        clock=clock
    )

@pytest.mark.asyncio
async def test_concurrent_fee_updates_keep_both(yielding_market):
    await asyncio.gather(
        yielding_market.set_fee_percentage(OWNER, 7),
        yielding_market.set_service_fee(OWNER, 999),
    )
    policy = await yielding_market.get_fee_policy()
    assert policy.percentage == 7
    assert policy.flat_service_fee == 999

@pytest.mark.asyncio
async def test_fee_updates_serialize_across_logic_versions(yielding_market):
    previous = yielding_market.logic
    await yielding_market.upgrade_to(OWNER, "MarketLogicV2")
    assert yielding_market.logic.admin_lock is previous.admin_lock

    # A call still running on the old logic races one on the new logic
    await asyncio.gather(
        previous.set_fee_receivers(OWNER, "0xNewA", "0xNewB", 30),
        yielding_market.set_fee_bounds(OWNER, 1, 40),
    )
    policy = await yielding_market.get_fee_policy()
    assert (policy.receiver_a, policy.receiver_a_share) == ("0xNewA", 30)
    assert (policy.min_percentage, policy.max_percentage) == (1, 40)
