"""In-process storage backend."""
from collections import defaultdict
from typing import Dict, List, Optional, Set

from ..errors import DuplicateAsset, NotFound, StaleListing
from ..models import FeePolicy, MarketListing
from . import MarketStorage, Mutator


class MemoryStorage(MarketStorage):
    """Dict-backed storage.

    The active index is an insertion-ordered dict used as an ordered set, so
    adding and removing an asset id is O(1) and asset id 0 is an ordinary key.
    """

    def __init__(self) -> None:
        self._listings: Dict[int, MarketListing] = {}
        self._active: Dict[int, None] = {}
        self._fee_policy: Optional[FeePolicy] = None
        self._roles: Dict[str, Set[str]] = defaultdict(set)
        self._role_admins: Dict[str, str] = {}
        self._paused = False
        self._implementation: Optional[str] = None
        self._service_fees = 0

    async def insert_listing(self, listing: MarketListing) -> MarketListing:
        if listing.asset_id in self._listings:
            raise DuplicateAsset(listing.asset_id)
        stored = listing.model_copy(update={'revision': 0})
        self._listings[listing.asset_id] = stored
        self._sync_index(stored)
        return stored.model_copy()

    async def get_listing(self, asset_id: int) -> MarketListing:
        try:
            return self._listings[asset_id].model_copy()
        except KeyError:
            raise NotFound(asset_id) from None

    async def update_listing(
        self,
        asset_id: int,
        mutator: Mutator,
        expected_revision: Optional[int] = None
    ) -> MarketListing:
        current = await self.get_listing(asset_id)
        if expected_revision is not None and current.revision != expected_revision:
            raise StaleListing()

        mutator(current)
        current.asset_id = asset_id
        current.revision += 1

        self._listings[asset_id] = current
        self._sync_index(current)
        return current.model_copy()

    def _sync_index(self, listing: MarketListing) -> None:
        if listing.is_active:
            self._active.setdefault(listing.asset_id, None)
        else:
            self._active.pop(listing.asset_id, None)

    async def active_ids(self) -> List[int]:
        return list(self._active)

    async def all_listings(self) -> List[MarketListing]:
        return [self._listings[asset_id].model_copy() for asset_id in sorted(self._listings)]

    async def get_fee_policy(self) -> FeePolicy:
        if self._fee_policy is None:
            raise LookupError("Fee policy has not been configured")
        return self._fee_policy.model_copy()

    async def set_fee_policy(self, policy: FeePolicy) -> None:
        self._fee_policy = policy.model_copy()

    async def has_role(self, role: str, principal: str) -> bool:
        return principal in self._roles.get(role, ())

    async def role_members(self, role: str) -> Set[str]:
        return set(self._roles.get(role, ()))

    async def add_role_member(self, role: str, principal: str) -> bool:
        if principal in self._roles[role]:
            return False
        self._roles[role].add(principal)
        return True

    async def remove_role_member(self, role: str, principal: str) -> bool:
        members = self._roles.get(role)
        if not members or principal not in members:
            return False
        members.remove(principal)
        return True

    async def get_role_admin(self, role: str) -> Optional[str]:
        return self._role_admins.get(role)

    async def set_role_admin(self, role: str, admin_role: str) -> None:
        self._role_admins[role] = admin_role

    async def all_roles(self) -> Dict[str, Set[str]]:
        return {role: set(members) for role, members in self._roles.items() if members}

    async def is_paused(self) -> bool:
        return self._paused

    async def set_paused(self, paused: bool) -> None:
        self._paused = paused

    async def get_implementation(self) -> Optional[str]:
        return self._implementation

    async def set_implementation(self, name: str) -> None:
        self._implementation = name

    async def add_service_fees(self, amount: int) -> None:
        self._service_fees += amount

    async def service_fees_collected(self) -> int:
        return self._service_fees
