"""Persistent market state.

Storage is the only holder of state: the listing table, the ordered
active-listing index, the fee policy, role assignments and the pause flag.
Logic versions are stateless and operate on a storage reference, so swapping
the logic leaves everything here untouched.
"""
import hashlib
import json
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Set

from ..models import FeePolicy, MarketListing

# Bumped only when the persisted shape changes incompatibly
LAYOUT_VERSION = 1

Mutator = Callable[[MarketListing], None]
PolicyUpdater = Callable[[FeePolicy], FeePolicy]


class MarketStorage(ABC):
    """Abstract async storage for one market deployment."""

    layout_version = LAYOUT_VERSION

    # Listings

    @abstractmethod
    async def insert_listing(self, listing: MarketListing) -> MarketListing:
        """Insert a new listing; raises DuplicateAsset if the asset id exists."""

    @abstractmethod
    async def get_listing(self, asset_id: int) -> MarketListing:
        """Return a copy of the listing; raises NotFound if absent."""

    @abstractmethod
    async def update_listing(
        self,
        asset_id: int,
        mutator: Mutator,
        expected_revision: Optional[int] = None
    ) -> MarketListing:
        """Apply ``mutator`` to the listing and persist it with the active index.

        Raises NotFound if absent and StaleListing if ``expected_revision``
        does not match the stored revision.
        """

    @abstractmethod
    async def active_ids(self) -> List[int]:
        """Asset ids of active listings in the order they entered the index."""

    @abstractmethod
    async def all_listings(self) -> List[MarketListing]:
        """Every listing ever created, ordered by asset id."""

    # Fee policy

    @abstractmethod
    async def get_fee_policy(self) -> FeePolicy: ...

    @abstractmethod
    async def set_fee_policy(self, policy: FeePolicy) -> None: ...

    async def update_fee_policy(self, updater: PolicyUpdater) -> FeePolicy:
        """Read, transform and write back the fee policy.

        Backends shared between processes override this to run atomically.
        Exceptions raised by ``updater`` leave the stored policy unchanged.
        """
        policy = updater(await self.get_fee_policy())
        await self.set_fee_policy(policy)
        return policy

    # Roles

    @abstractmethod
    async def has_role(self, role: str, principal: str) -> bool: ...

    @abstractmethod
    async def role_members(self, role: str) -> Set[str]: ...

    @abstractmethod
    async def add_role_member(self, role: str, principal: str) -> bool:
        """Add a member; returns False if it already held the role."""

    @abstractmethod
    async def remove_role_member(self, role: str, principal: str) -> bool:
        """Remove a member; returns False if it did not hold the role."""

    @abstractmethod
    async def get_role_admin(self, role: str) -> Optional[str]: ...

    @abstractmethod
    async def set_role_admin(self, role: str, admin_role: str) -> None: ...

    @abstractmethod
    async def all_roles(self) -> Dict[str, Set[str]]: ...

    # Market state

    @abstractmethod
    async def is_paused(self) -> bool: ...

    @abstractmethod
    async def set_paused(self, paused: bool) -> None: ...

    async def swap_paused(self, expected: bool, paused: bool) -> bool:
        """Set the pause flag only if it currently equals ``expected``."""
        if await self.is_paused() != expected:
            return False
        await self.set_paused(paused)
        return True

    @abstractmethod
    async def get_implementation(self) -> Optional[str]:
        """Name of the active logic version, None before deployment."""

    @abstractmethod
    async def set_implementation(self, name: str) -> None: ...

    @abstractmethod
    async def add_service_fees(self, amount: int) -> None: ...

    @abstractmethod
    async def service_fees_collected(self) -> int: ...

    async def is_initialized(self) -> bool:
        return await self.get_implementation() is not None

    async def snapshot(self) -> dict:
        """Canonical view of the state that must survive a logic swap."""
        roles = await self.all_roles()
        return {
            'layout_version': self.layout_version,
            'listings': [listing.snapshot() for listing in await self.all_listings()],
            'active_index': await self.active_ids(),
            'fee_policy': (await self.get_fee_policy()).model_dump(),
            'roles': {role: sorted(members) for role, members in sorted(roles.items())},
            'paused': await self.is_paused(),
        }

    async def digest(self) -> str:
        """SHA-256 over the canonical JSON encoding of :meth:`snapshot`."""
        encoded = json.dumps(await self.snapshot(), sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(encoded.encode()).hexdigest()


from .memory import MemoryStorage  # noqa: E402

__all__ = ['MarketStorage', 'MemoryStorage', 'LAYOUT_VERSION', 'Mutator', 'PolicyUpdater']
