"""Market data models: listings and the fee policy."""
from typing import Optional, Tuple

from pydantic import BaseModel, Field

from .errors import OutOfBounds

PERCENT = 100


class MarketListing(BaseModel):
    """One fixed-price offer for a single asset.

    ``restricted_buyer`` of ``None`` means any buyer may purchase; ``expiry``
    of ``0`` means the offer never expires.
    """
    asset_id: int = Field(ge=0)
    seller: str
    price: int = Field(ge=0)
    expiry: int = Field(default=0, ge=0)
    restricted_buyer: Optional[str] = None
    sold: bool = False
    deleted: bool = False
    revision: int = 0

    @property
    def is_active(self) -> bool:
        return not self.sold and not self.deleted

    def is_expired(self, now: float) -> bool:
        return self.expiry != 0 and now > self.expiry

    def snapshot(self) -> dict:
        """Persistent fields in canonical form."""
        return self.model_dump()


class FeePolicy(BaseModel):
    """Percentage trade fee, flat service fee and the fee receivers."""
    percentage: int
    min_percentage: int = 0
    max_percentage: int = PERCENT
    flat_service_fee: int = Field(default=0, ge=0)
    receiver_a: str
    receiver_b: str
    receiver_a_share: int = Field(default=50, ge=0, le=PERCENT)

    def quote_total(self, price: int) -> Tuple[int, int]:
        """Return ``(total, fee)`` a buyer must send for ``price``.

        The fee is floored; ``total`` is exactly what a purchase must carry.
        """
        fee = price * self.percentage // PERCENT
        return price + fee, fee

    def split_fee(self, fee: int) -> Tuple[int, int]:
        """Split a trade fee between the two receivers.

        Rounding dust goes to receiver B so the shares always sum to ``fee``.
        """
        share_a = fee * self.receiver_a_share // PERCENT
        return share_a, fee - share_a

    def validate_bounds(self) -> "FeePolicy":
        if not 0 <= self.min_percentage <= self.max_percentage <= PERCENT:
            raise OutOfBounds(
                f"Invalid fee bounds [{self.min_percentage}, {self.max_percentage}]"
            )
        if not self.min_percentage <= self.percentage <= self.max_percentage:
            raise OutOfBounds(
                f"Fee percentage {self.percentage} outside "
                f"[{self.min_percentage}, {self.max_percentage}]"
            )
        if not 0 <= self.receiver_a_share <= PERCENT:
            raise OutOfBounds(f"Receiver share {self.receiver_a_share} outside [0, {PERCENT}]")
        if self.flat_service_fee < 0:
            raise OutOfBounds(f"Service fee {self.flat_service_fee} is negative")
        return self

    def with_percentage(self, value: int) -> "FeePolicy":
        return self.model_copy(update={'percentage': value}).validate_bounds()

    def with_bounds(self, min_percentage: int, max_percentage: int) -> "FeePolicy":
        return self.model_copy(update={
            'min_percentage': min_percentage,
            'max_percentage': max_percentage,
        }).validate_bounds()

    def with_receivers(self, receiver_a: str, receiver_b: str, receiver_a_share: Optional[int] = None) -> "FeePolicy":
        update = {'receiver_a': receiver_a, 'receiver_b': receiver_b}
        if receiver_a_share is not None:
            update['receiver_a_share'] = receiver_a_share
        return self.model_copy(update=update).validate_bounds()

    def with_service_fee(self, amount: int) -> "FeePolicy":
        return self.model_copy(update={'flat_service_fee': amount}).validate_bounds()
