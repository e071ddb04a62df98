"""Second release of the market logic.

Adds read-only helpers on top of V1 and keeps the V1 storage layout, so it
can replace V1 on a live deployment.
"""
from typing import List, Tuple

from .engine import MarketLogicV1
from .models import MarketListing


class MarketLogicV2(MarketLogicV1):
    name = 'MarketLogicV2'

    async def get_listings_by_seller(self, seller: str) -> List[MarketListing]:
        """Every listing a seller has created, sold and retired ones included."""
        return [listing for listing in await self.storage.all_listings() if listing.seller == seller]

    async def quote(self, asset_id: int) -> Tuple[int, int]:
        """Return ``(total, fee)`` a buyer must send for a listing."""
        listing = await self.storage.get_listing(asset_id)
        return (await self.storage.get_fee_policy()).quote_total(listing.price)
