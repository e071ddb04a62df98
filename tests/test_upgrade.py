"""Tests for swapping the logic version of a live market."""

import pytest

from market import (
    DEFAULT_IMPLEMENTATION, UPGRADER_ROLE, AlreadyInitialized, InvalidImplementation,
    Marketplace, MarketLogicV1, MarketLogicV2, MissingRole,
)
from market.events import Upgraded

from .conftest import BUYER, MARKET, OTHER, OWNER, SELLER, UNIT, fee_policy

ASKING = 10 * UNIT + UNIT // 2

async def populate(market, registry):
    registry.set_approval_for_all(SELLER, MARKET)
    await market.create_offer(SELLER, 0, 10 * UNIT)
    await market.create_offer(SELLER, 1, 10 * UNIT, 0, BUYER)
    await market.create_offer(SELLER, 2, 7 * UNIT)
    await market.retire_offer(SELLER, 2)
    await market.sell_offer(BUYER, 0, ASKING)

@pytest.mark.asyncio
async def test_upgrade_preserves_state(market, registry, storage, events):
    await populate(market, registry)
    digest = await storage.digest()
    active = await market.list_active()
    detailed = await market.list_all_detailed()

    assert market.implementation == DEFAULT_IMPLEMENTATION
    await market.upgrade_to(OWNER, MarketLogicV2.name)

    assert market.implementation == MarketLogicV2.name
    assert isinstance(market.logic, MarketLogicV2)
    assert await storage.digest() == digest
    assert await market.list_active() == active
    assert await market.list_all_detailed() == detailed
    assert await storage.get_implementation() == MarketLogicV2.name
    assert events.of_type(Upgraded)[-1].implementation == MarketLogicV2.name

@pytest.mark.asyncio
async def test_trading_continues_after_upgrade(market, registry):
    await populate(market, registry)
    await market.upgrade_to(OWNER, MarketLogicV2.name)

    await market.sell_offer(BUYER, 1, ASKING)
    assert registry.owner_of(1) == BUYER
    await market.re_offer(SELLER, 2)
    assert await market.list_active() == [2]

@pytest.mark.asyncio
async def test_v2_helpers(market, registry):
    await populate(market, registry)
    with pytest.raises(AttributeError):
        market.get_listings_by_seller

    await market.upgrade_to(OWNER, MarketLogicV2.name)
    listings = await market.get_listings_by_seller(SELLER)
    assert [listing.asset_id for listing in listings] == [0, 1, 2]
    assert await market.get_listings_by_seller(OTHER) == []
    assert await market.quote(2) == (7 * UNIT + 7 * UNIT * 5 // 100, 7 * UNIT * 5 // 100)

@pytest.mark.asyncio
async def test_upgrade_requires_upgrader_role(market):
    with pytest.raises(MissingRole) as exc_info:
        await market.upgrade_to(SELLER, MarketLogicV2.name)
    assert exc_info.value.role == UPGRADER_ROLE
    assert market.implementation == MarketLogicV1.name

    await market.grant_role(OWNER, UPGRADER_ROLE, SELLER)
    await market.upgrade_to(SELLER, MarketLogicV2.name)
    assert market.implementation == MarketLogicV2.name

@pytest.mark.asyncio
async def test_upgrade_to_invalid_implementation(market):
    with pytest.raises(InvalidImplementation):
        await market.upgrade_to(OWNER, "MarketLogicV9")
    with pytest.raises(InvalidImplementation):
        await market.upgrade_to(OWNER, MarketLogicV1.name)
    with pytest.raises(InvalidImplementation):
        await market.upgrade_to(OWNER, dict)
    assert market.implementation == MarketLogicV1.name

@pytest.mark.asyncio
async def test_upgrade_to_incompatible_layout(market):
    class FutureLogic(MarketLogicV2):
        name = "FutureLogic"
        storage_layout = 2

    with pytest.raises(InvalidImplementation):
        await market.upgrade_to(OWNER, FutureLogic)
    assert market.implementation == MarketLogicV1.name

@pytest.mark.asyncio
async def test_upgrade_while_paused(market):
    await market.pause(OWNER)
    await market.upgrade_to(OWNER, MarketLogicV2.name)
    assert await market.is_paused()

@pytest.mark.asyncio
async def test_attach_resumes_upgraded_logic(market, storage, registry, currency):
    await populate(market, registry)
    await market.upgrade_to(OWNER, MarketLogicV2.name)

    resumed = await Marketplace.attach(storage, registry, currency, market_address=MARKET)
    assert resumed.implementation == MarketLogicV2.name
    assert await resumed.list_active() == await market.list_active()

@pytest.mark.asyncio
async def test_deploy_twice(market, storage, registry, currency):
    with pytest.raises(AlreadyInitialized):
        await Marketplace.deploy(
            storage, registry, currency,
            deployer=OTHER,
            market_address=MARKET,
            fee_policy=fee_policy()
        )
    assert not await market.has_role(UPGRADER_ROLE, OTHER)
