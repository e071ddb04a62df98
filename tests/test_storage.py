"""Tests for the storage backends.

The PostgreSQL backend runs only when MARKET_TEST_DB_URL points at a
disposable database; its tables are dropped and recreated.
"""

import os
import pytest
import pytest_asyncio

from market import DuplicateAsset, MarketListing, MemoryStorage, NotFound, OutOfBounds, StaleListing

from .conftest import OWNER, SELLER, fee_policy

TEST_DB_URL = os.environ.get("MARKET_TEST_DB_URL")

@pytest_asyncio.fixture(params=["memory", "postgres"])
async def store(request):
    """Yield a fresh storage of each backend."""
    if request.param == "memory":
        yield MemoryStorage()
        return

    if not TEST_DB_URL:
        pytest.skip("MARKET_TEST_DB_URL not set")

    from database import init_db, close as close_db
    from market.storage.postgres import PostgresStorage

    pool = await init_db(TEST_DB_URL, force_recreate=True)
    yield PostgresStorage(pool)
    await close_db()

def listing(asset_id: int, **overrides) -> MarketListing:
    values = {"asset_id": asset_id, "seller": SELLER, "price": 10 ** 19}
    values.update(overrides)
    return MarketListing(**values)

def retire(record: MarketListing) -> None:
    record.deleted = True

def restore(record: MarketListing) -> None:
    record.deleted = False

@pytest.mark.asyncio
async def test_insert_and_get(store):
    stored = await store.insert_listing(listing(0, expiry=123, restricted_buyer=OWNER))
    assert stored.revision == 0

    fetched = await store.get_listing(0)
    assert fetched == stored
    assert fetched.price == 10 ** 19
    assert await store.active_ids() == [0]

@pytest.mark.asyncio
async def test_large_values_survive(store):
    big = 2 ** 256 - 1
    await store.insert_listing(listing(big, price=big))
    fetched = await store.get_listing(big)
    assert fetched.asset_id == big
    assert fetched.price == big

@pytest.mark.asyncio
async def test_insert_duplicate(store):
    await store.insert_listing(listing(1))
    with pytest.raises(DuplicateAsset):
        await store.insert_listing(listing(1, seller=OWNER))
    assert (await store.get_listing(1)).seller == SELLER

@pytest.mark.asyncio
async def test_get_missing(store):
    with pytest.raises(NotFound):
        await store.get_listing(5)
    with pytest.raises(NotFound):
        await store.update_listing(5, retire)

@pytest.mark.asyncio
async def test_update_syncs_index(store):
    for asset_id in (3, 1, 2):
        await store.insert_listing(listing(asset_id))
    assert await store.active_ids() == [3, 1, 2]

    updated = await store.update_listing(1, retire)
    assert updated.deleted
    assert updated.revision == 1
    assert await store.active_ids() == [3, 2]

    await store.update_listing(1, restore)
    assert await store.active_ids() == [3, 2, 1]

    listings = await store.all_listings()
    assert [item.asset_id for item in listings] == [1, 2, 3]

@pytest.mark.asyncio
async def test_stale_revision(store):
    await store.insert_listing(listing(1))
    await store.update_listing(1, retire, expected_revision=0)
    with pytest.raises(StaleListing):
        await store.update_listing(1, restore, expected_revision=0)
    assert (await store.get_listing(1)).deleted

@pytest.mark.asyncio
async def test_fee_policy(store):
    with pytest.raises(LookupError):
        await store.get_fee_policy()
    policy = fee_policy(flat_service_fee=1_200_000_000_000_000)
    await store.set_fee_policy(policy)
    assert await store.get_fee_policy() == policy

@pytest.mark.asyncio
async def test_update_fee_policy(store):
    await store.set_fee_policy(fee_policy())
    policy = await store.update_fee_policy(lambda current: current.with_percentage(9))
    assert policy.percentage == 9
    assert (await store.get_fee_policy()).percentage == 9

    def reject(current):
        raise OutOfBounds("no")

    with pytest.raises(OutOfBounds):
        await store.update_fee_policy(reject)
    assert (await store.get_fee_policy()).percentage == 9

@pytest.mark.asyncio
async def test_roles(store):
    assert await store.add_role_member("PAUSER_ROLE", OWNER)
    assert not await store.add_role_member("PAUSER_ROLE", OWNER)
    assert await store.has_role("PAUSER_ROLE", OWNER)
    assert await store.role_members("PAUSER_ROLE") == {OWNER}

    await store.set_role_admin("PAUSER_ROLE", "UPGRADER_ROLE")
    assert await store.get_role_admin("PAUSER_ROLE") == "UPGRADER_ROLE"
    assert await store.get_role_admin("UPGRADER_ROLE") is None

    assert await store.remove_role_member("PAUSER_ROLE", OWNER)
    assert not await store.remove_role_member("PAUSER_ROLE", OWNER)
    assert await store.all_roles() == {}

@pytest.mark.asyncio
async def test_market_state(store):
    assert not await store.is_initialized()
    assert not await store.is_paused()
    assert await store.service_fees_collected() == 0

    await store.set_paused(True)
    await store.set_implementation("MarketLogicV1")
    await store.add_service_fees(5)
    await store.add_service_fees(7)

    assert await store.is_paused()
    assert await store.is_initialized()
    assert await store.get_implementation() == "MarketLogicV1"
    assert await store.service_fees_collected() == 12

@pytest.mark.asyncio
async def test_swap_paused(store):
    assert await store.swap_paused(False, True)
    assert await store.is_paused()
    assert not await store.swap_paused(False, True)
    assert await store.swap_paused(True, False)
    assert not await store.swap_paused(True, False)
    assert not await store.is_paused()

@pytest.mark.asyncio
async def test_digest_ignores_implementation(store):
    await store.set_fee_policy(fee_policy())
    await store.insert_listing(listing(0))
    await store.set_implementation("MarketLogicV1")
    digest = await store.digest()

    await store.set_implementation("MarketLogicV2")
    assert await store.digest() == digest

    await store.update_listing(0, retire)
    assert await store.digest() != digest

@pytest.mark.asyncio
async def test_returned_copies_are_detached(store):
    await store.insert_listing(listing(0))
    fetched = await store.get_listing(0)
    fetched.sold = True
    assert not (await store.get_listing(0)).sold
