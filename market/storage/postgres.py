"""PostgreSQL/CockroachDB storage backend.

Listing mutations and active-index maintenance run in one transaction. The
listing row is locked with SELECT ... FOR UPDATE while the mutator runs, and
the stored revision guards against writers in other processes.
"""
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Set

import asyncpg
from asyncpg.pool import Pool

from database import get_pool
from database.exceptions import DatabaseError
from ..errors import DuplicateAsset, NotFound, StaleListing
from ..models import FeePolicy, MarketListing
from . import MarketStorage, Mutator, PolicyUpdater

logger = logging.getLogger(__name__)

LISTING_COLUMNS = '''
    asset_id, seller, price, expiry, restricted_buyer, sold, deleted, revision
'''


def _listing_from_row(row) -> MarketListing:
    return MarketListing(
        asset_id=int(row['asset_id']),
        seller=row['seller'],
        price=int(row['price']),
        expiry=row['expiry'],
        restricted_buyer=row['restricted_buyer'],
        sold=row['sold'],
        deleted=row['deleted'],
        revision=row['revision'],
    )


FEE_POLICY_QUERY = '''
    SELECT percentage, min_percentage, max_percentage, flat_service_fee,
           receiver_a, receiver_b, receiver_a_share
    FROM fee_policy WHERE id = 1
'''


def _policy_from_row(row) -> FeePolicy:
    if not row:
        raise LookupError("Fee policy has not been configured")
    values = dict(row)
    values['flat_service_fee'] = int(values['flat_service_fee'])
    return FeePolicy(**values)


class PostgresStorage(MarketStorage):
    """Market storage on an asyncpg pool using the tables of schema v1."""

    def __init__(self, pool: Optional[Pool] = None) -> None:
        """Initialize the storage.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def _fetchrow(self, query: str, *args):
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(query, *args)
        except asyncpg.PostgresError as e:
            logger.error(f"Storage query failed: {e}")
            raise DatabaseError(f"Storage query failed: {e}") from e

    async def _fetch(self, query: str, *args):
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except asyncpg.PostgresError as e:
            logger.error(f"Storage query failed: {e}")
            raise DatabaseError(f"Storage query failed: {e}") from e

    async def _execute(self, query: str, *args) -> str:
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                return await conn.execute(query, *args)
        except asyncpg.PostgresError as e:
            logger.error(f"Storage statement failed: {e}")
            raise DatabaseError(f"Storage statement failed: {e}") from e

    async def _sync_index(self, conn, listing: MarketListing) -> None:
        if listing.is_active:
            await conn.execute(
                '''
                INSERT INTO active_listings (asset_id) VALUES ($1)
                ON CONFLICT (asset_id) DO NOTHING
                ''',
                Decimal(listing.asset_id)
            )
        else:
            await conn.execute(
                'DELETE FROM active_listings WHERE asset_id = $1',
                Decimal(listing.asset_id)
            )

    # Listings

    async def insert_listing(self, listing: MarketListing) -> MarketListing:
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        f'''
                        INSERT INTO market_listings (
                            asset_id, seller, price, expiry, restricted_buyer,
                            sold, deleted, revision
                        ) VALUES ($1, $2, $3, $4, $5, $6, $7, 0)
                        RETURNING {LISTING_COLUMNS}
                        ''',
                        Decimal(listing.asset_id),
                        listing.seller,
                        Decimal(listing.price),
                        listing.expiry,
                        listing.restricted_buyer,
                        listing.sold,
                        listing.deleted
                    )
                    stored = _listing_from_row(row)
                    await self._sync_index(conn, stored)
                    return stored
        except asyncpg.UniqueViolationError:
            raise DuplicateAsset(listing.asset_id) from None
        except asyncpg.PostgresError as e:
            logger.error(f"Error inserting listing {listing.asset_id}: {e}")
            raise DatabaseError(f"Failed to insert listing: {e}") from e

    async def get_listing(self, asset_id: int) -> MarketListing:
        row = await self._fetchrow(
            f'SELECT {LISTING_COLUMNS} FROM market_listings WHERE asset_id = $1',
            Decimal(asset_id)
        )
        if not row:
            raise NotFound(asset_id)
        return _listing_from_row(row)

    async def update_listing(
        self,
        asset_id: int,
        mutator: Mutator,
        expected_revision: Optional[int] = None
    ) -> MarketListing:
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        f'''
                        SELECT {LISTING_COLUMNS} FROM market_listings
                        WHERE asset_id = $1
                        FOR UPDATE
                        ''',
                        Decimal(asset_id)
                    )
                    if not row:
                        raise NotFound(asset_id)

                    listing = _listing_from_row(row)
                    if expected_revision is not None and listing.revision != expected_revision:
                        raise StaleListing()

                    mutator(listing)

                    updated = await conn.fetchrow(
                        f'''
                        UPDATE market_listings SET
                            price = $2,
                            expiry = $3,
                            restricted_buyer = $4,
                            sold = $5,
                            deleted = $6,
                            revision = revision + 1
                        WHERE asset_id = $1 AND revision = $7
                        RETURNING {LISTING_COLUMNS}
                        ''',
                        Decimal(asset_id),
                        Decimal(listing.price),
                        listing.expiry,
                        listing.restricted_buyer,
                        listing.sold,
                        listing.deleted,
                        listing.revision
                    )
                    if not updated:
                        raise StaleListing()

                    stored = _listing_from_row(updated)
                    await self._sync_index(conn, stored)
                    return stored
        except asyncpg.PostgresError as e:
            logger.error(f"Error updating listing {asset_id}: {e}")
            raise DatabaseError(f"Failed to update listing: {e}") from e

    async def active_ids(self) -> List[int]:
        rows = await self._fetch('SELECT asset_id FROM active_listings ORDER BY position')
        return [int(row['asset_id']) for row in rows]

    async def all_listings(self) -> List[MarketListing]:
        rows = await self._fetch(
            f'SELECT {LISTING_COLUMNS} FROM market_listings ORDER BY asset_id'
        )
        return [_listing_from_row(row) for row in rows]

    # Fee policy

    async def get_fee_policy(self) -> FeePolicy:
        return _policy_from_row(await self._fetchrow(FEE_POLICY_QUERY))

    async def set_fee_policy(self, policy: FeePolicy) -> None:
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                await self._write_fee_policy(conn, policy)
        except asyncpg.PostgresError as e:
            logger.error(f"Error writing fee policy: {e}")
            raise DatabaseError(f"Failed to write fee policy: {e}") from e

    async def update_fee_policy(self, updater: PolicyUpdater) -> FeePolicy:
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(f'{FEE_POLICY_QUERY} FOR UPDATE')
                    policy = updater(_policy_from_row(row))
                    await self._write_fee_policy(conn, policy)
                    return policy
        except asyncpg.PostgresError as e:
            logger.error(f"Error updating fee policy: {e}")
            raise DatabaseError(f"Failed to update fee policy: {e}") from e

    @staticmethod
    async def _write_fee_policy(conn, policy: FeePolicy) -> None:
        await conn.execute(
            '''
            INSERT INTO fee_policy (
                id, percentage, min_percentage, max_percentage, flat_service_fee,
                receiver_a, receiver_b, receiver_a_share
            ) VALUES (1, $1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (id) DO UPDATE SET
                percentage = excluded.percentage,
                min_percentage = excluded.min_percentage,
                max_percentage = excluded.max_percentage,
                flat_service_fee = excluded.flat_service_fee,
                receiver_a = excluded.receiver_a,
                receiver_b = excluded.receiver_b,
                receiver_a_share = excluded.receiver_a_share
            ''',
            policy.percentage,
            policy.min_percentage,
            policy.max_percentage,
            Decimal(policy.flat_service_fee),
            policy.receiver_a,
            policy.receiver_b,
            policy.receiver_a_share
        )

    # Roles

    async def has_role(self, role: str, principal: str) -> bool:
        row = await self._fetchrow(
            'SELECT 1 FROM role_members WHERE role = $1 AND principal = $2',
            role, principal
        )
        return row is not None

    async def role_members(self, role: str) -> Set[str]:
        rows = await self._fetch('SELECT principal FROM role_members WHERE role = $1', role)
        return {row['principal'] for row in rows}

    async def add_role_member(self, role: str, principal: str) -> bool:
        row = await self._fetchrow(
            '''
            INSERT INTO role_members (role, principal) VALUES ($1, $2)
            ON CONFLICT (role, principal) DO NOTHING
            RETURNING role
            ''',
            role, principal
        )
        return row is not None

    async def remove_role_member(self, role: str, principal: str) -> bool:
        row = await self._fetchrow(
            'DELETE FROM role_members WHERE role = $1 AND principal = $2 RETURNING role',
            role, principal
        )
        return row is not None

    async def get_role_admin(self, role: str) -> Optional[str]:
        row = await self._fetchrow('SELECT admin_role FROM role_admins WHERE role = $1', role)
        return row['admin_role'] if row else None

    async def set_role_admin(self, role: str, admin_role: str) -> None:
        await self._execute(
            '''
            INSERT INTO role_admins (role, admin_role) VALUES ($1, $2)
            ON CONFLICT (role) DO UPDATE SET admin_role = excluded.admin_role
            ''',
            role, admin_role
        )

    async def all_roles(self) -> Dict[str, Set[str]]:
        roles: Dict[str, Set[str]] = {}
        for row in await self._fetch('SELECT role, principal FROM role_members'):
            roles.setdefault(row['role'], set()).add(row['principal'])
        return roles

    # Market state

    async def _state(self):
        return await self._fetchrow(
            '''
            SELECT paused, implementation, service_fees_collected
            FROM market_state WHERE id = 1
            '''
        )

    async def _ensure_state_row(self) -> None:
        await self._execute(
            'INSERT INTO market_state (id) VALUES (1) ON CONFLICT (id) DO NOTHING'
        )

    async def is_paused(self) -> bool:
        row = await self._state()
        return bool(row and row['paused'])

    async def set_paused(self, paused: bool) -> None:
        await self._ensure_state_row()
        await self._execute('UPDATE market_state SET paused = $1 WHERE id = 1', paused)

    async def swap_paused(self, expected: bool, paused: bool) -> bool:
        await self._ensure_state_row()
        row = await self._fetchrow(
            'UPDATE market_state SET paused = $2 WHERE id = 1 AND paused = $1 RETURNING id',
            expected, paused
        )
        return row is not None

    async def get_implementation(self) -> Optional[str]:
        row = await self._state()
        return row['implementation'] if row else None

    async def set_implementation(self, name: str) -> None:
        await self._ensure_state_row()
        await self._execute('UPDATE market_state SET implementation = $1 WHERE id = 1', name)

    async def add_service_fees(self, amount: int) -> None:
        await self._ensure_state_row()
        await self._execute(
            '''
            UPDATE market_state
            SET service_fees_collected = service_fees_collected + $1
            WHERE id = 1
            ''',
            Decimal(amount)
        )

    async def service_fees_collected(self) -> int:
        row = await self._state()
        return int(row['service_fees_collected']) if row else 0
