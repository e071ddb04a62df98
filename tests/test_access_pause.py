"""Tests for roles and the pause gate."""

import asyncio
import pytest

from market import (
    DEFAULT_ADMIN_ROLE, PAUSER_ROLE, UPGRADER_ROLE, ROLES,
    Marketplace, MemoryStorage, MissingRole, NotPaused, SystemPaused, Unauthorized,
)
from market.events import Paused, RoleGranted, RoleRevoked, Unpaused

from .conftest import BUYER, MARKET, OTHER, OWNER, SELLER, UNIT, fee_policy

@pytest.mark.asyncio
async def test_deployer_holds_every_role(market):
    for role in ROLES:
        assert await market.has_role(role, OWNER)
        assert not await market.has_role(role, SELLER)

@pytest.mark.asyncio
async def test_grant_and_revoke_role(market, events):
    assert await market.grant_role(OWNER, PAUSER_ROLE, OTHER) is True
    assert await market.has_role(PAUSER_ROLE, OTHER)
    # Granting twice is a no-op
    assert await market.grant_role(OWNER, PAUSER_ROLE, OTHER) is False

    assert await market.revoke_role(OWNER, PAUSER_ROLE, OTHER) is True
    assert not await market.has_role(PAUSER_ROLE, OTHER)
    assert await market.revoke_role(OWNER, PAUSER_ROLE, OTHER) is False

    granted = [e for e in events.of_type(RoleGranted) if e.principal == OTHER]
    revoked = events.of_type(RoleRevoked)
    assert len(granted) == 1
    assert len(revoked) == 1
    assert revoked[0].sender == OWNER

@pytest.mark.asyncio
async def test_grant_role_requires_admin(market):
    with pytest.raises(MissingRole) as exc_info:
        await market.grant_role(SELLER, PAUSER_ROLE, SELLER)
    assert exc_info.value.role == DEFAULT_ADMIN_ROLE
    assert exc_info.value.principal == SELLER
    assert not await market.has_role(PAUSER_ROLE, SELLER)

@pytest.mark.asyncio
async def test_renounce_role(market):
    await market.grant_role(OWNER, UPGRADER_ROLE, OTHER)
    assert await market.renounce_role(OTHER, UPGRADER_ROLE) is True
    assert not await market.has_role(UPGRADER_ROLE, OTHER)

@pytest.mark.asyncio
async def test_renounce_for_someone_else_rejected(market):
    with pytest.raises(Unauthorized):
        await market.access.renounce_role(SELLER, PAUSER_ROLE, OWNER)
    assert await market.has_role(PAUSER_ROLE, OWNER)

@pytest.mark.asyncio
async def test_custom_role_admin(market):
    await market.access.set_role_admin(OWNER, PAUSER_ROLE, UPGRADER_ROLE)
    await market.grant_role(OWNER, UPGRADER_ROLE, OTHER)
    # OTHER now administers the pauser role without being a default admin
    assert await market.grant_role(OTHER, PAUSER_ROLE, BUYER)
    assert await market.has_role(PAUSER_ROLE, BUYER)

@pytest.mark.asyncio
async def test_pause_and_unpause(market, events):
    assert not await market.is_paused()
    await market.pause(OWNER)
    assert await market.is_paused()
    await market.unpause(OWNER)
    assert not await market.is_paused()

    assert events.of_type(Paused)[0].account == OWNER
    assert events.of_type(Unpaused)[0].account == OWNER

@pytest.mark.asyncio
async def test_pause_requires_pauser_role(market):
    with pytest.raises(MissingRole):
        await market.pause(SELLER)
    assert not await market.is_paused()

    await market.grant_role(OWNER, PAUSER_ROLE, SELLER)
    await market.pause(SELLER)
    assert await market.is_paused()

@pytest.mark.asyncio
async def test_pause_twice_and_unpause_active(market):
    with pytest.raises(NotPaused):
        await market.unpause(OWNER)
    await market.pause(OWNER)
    with pytest.raises(SystemPaused):
        await market.pause(OWNER)

@pytest.mark.asyncio
async def test_paused_market_rejects_trading(market, listed, registry):
    registry.approve(SELLER, MARKET, 2)
    await market.pause(OWNER)

    with pytest.raises(SystemPaused):
        await market.create_offer(SELLER, 2, UNIT)
    with pytest.raises(SystemPaused):
        await market.change_offer(SELLER, 1, 20 * UNIT)
    with pytest.raises(SystemPaused):
        await market.retire_offer(SELLER, 1)
    with pytest.raises(SystemPaused):
        await market.re_offer(SELLER, 1)
    with pytest.raises(SystemPaused):
        await market.return_card(SELLER, 1)
    with pytest.raises(SystemPaused):
        await market.sell_offer(BUYER, 1, 10 * UNIT + UNIT // 2)

    # Pause is checked before existence
    with pytest.raises(SystemPaused):
        await market.sell_offer(BUYER, 99, 0)

    assert await market.list_active() == [1]
    assert (await market.get_listing(1)).price == 10 * UNIT

@pytest.mark.asyncio
async def test_roles_and_reads_work_while_paused(market, listed):
    await market.pause(OWNER)
    assert await market.grant_role(OWNER, PAUSER_ROLE, OTHER)
    assert (await market.get_listing(1)).seller == SELLER
    assert await market.list_active() == [1]

    await market.unpause(OWNER)
    await market.retire_offer(SELLER, 1)
    assert await market.list_active() == []

class YieldingStorage(MemoryStorage):
    """Memory storage that gives up the loop on every pause flag access."""

    async def is_paused(self) -> bool:
        await asyncio.sleep(0)
        return await super().is_paused()

    async def set_paused(self, paused: bool) -> None:
        await asyncio.sleep(0)
        await super().set_paused(paused)

@pytest.mark.asyncio
async def test_concurrent_pause_succeeds_once(registry, currency, events):
    market = await Marketplace.deploy(
        YieldingStorage(), registry, currency,
        deployer=OWNER,
        market_address=MARKET,
        fee_policy=fee_policy(),
        events=events
    )
    await market.grant_role(OWNER, PAUSER_ROLE, OTHER)

    results = await asyncio.gather(
        market.pause(OWNER),
        market.pause(OTHER),
        return_exceptions=True
    )
    failures = [result for result in results if isinstance(result, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], SystemPaused)
    assert len(events.of_type(Paused)) == 1

    results = await asyncio.gather(
        market.unpause(OWNER),
        market.unpause(OTHER),
        return_exceptions=True
    )
    failures = [result for result in results if isinstance(result, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], NotPaused)
    assert len(events.of_type(Unpaused)) == 1
    assert not await market.is_paused()
