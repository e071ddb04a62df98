"""Market error taxonomy.

Every rejection carries a stable machine-readable ``code`` and a
human-readable ``reason``. Nothing is retried internally; callers decide
whether to retry with corrected parameters.
"""
from typing import Optional


class MarketError(Exception):
    """Base exception for market operations."""
    code = "MARKET_ERROR"
    reason = "Market operation failed"

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason or self.reason
        super().__init__(self.reason)


class Unauthorized(MarketError):
    """Caller lacks the required role, ownership or approval."""
    code = "UNAUTHORIZED"
    reason = "Caller is not authorized"

class MissingRole(Unauthorized):
    """Caller does not hold a required role."""
    code = "MISSING_ROLE"

    def __init__(self, principal: str, role: str):
        self.principal = principal
        self.role = role
        super().__init__(f"AccessControl: account {principal} is missing role {role}")

class NotSeller(Unauthorized):
    code = "NOT_SELLER"
    reason = "Caller is not the seller"

class NotOwner(Unauthorized):
    code = "NOT_OWNER"
    reason = "Caller is not the owner of the card"

class NotAuthorizedToList(Unauthorized):
    """The market holds no transfer approval for the asset."""
    code = "NOT_APPROVED"
    reason = "You need to approve it"


class NotFound(MarketError):
    code = "NOT_FOUND"
    reason = "Offer not found"

    def __init__(self, asset_id: int):
        self.asset_id = asset_id
        super().__init__(f"Offer not found for card {asset_id}")

class DuplicateAsset(MarketError):
    code = "DUPLICATE_ASSET"
    reason = "Card already listed"

    def __init__(self, asset_id: int):
        self.asset_id = asset_id
        super().__init__(f"Card {asset_id} already listed")


class InvalidState(MarketError):
    """Listing or market state forbids the operation."""
    code = "INVALID_STATE"

class AlreadySold(InvalidState):
    code = "ALREADY_SOLD"
    reason = "Card already bought"

class AlreadyRetired(InvalidState):
    code = "ALREADY_RETIRED"
    reason = "Retired offer"

class NotRetired(InvalidState):
    code = "NOT_RETIRED"
    reason = "Offer is not retired"

class OfferExpired(InvalidState):
    code = "OFFER_EXPIRED"
    reason = "Offer expired"

class NotPaused(InvalidState):
    code = "NOT_PAUSED"
    reason = "Pausable: not paused"

class StaleListing(InvalidState):
    """The listing changed between validation and commit."""
    code = "STALE_LISTING"
    reason = "Listing changed concurrently"

class AlreadyInitialized(InvalidState):
    code = "ALREADY_INITIALIZED"
    reason = "Initializable: market is already initialized"


class PaymentMismatch(MarketError):
    code = "PAYMENT_MISMATCH"

    def __init__(self, expected: int, received: int, reason: Optional[str] = None):
        self.expected = expected
        self.received = received
        super().__init__(reason)

class UnderPayment(PaymentMismatch):
    code = "UNDER_PAYMENT"
    reason = "Overflow error generated by sending a price under the real price"

class OverPayment(PaymentMismatch):
    code = "OVER_PAYMENT"
    reason = "Please submit the asking price in order to complete the purchase"

class InsufficientServiceFee(PaymentMismatch):
    code = "INSUFFICIENT_SERVICE_FEE"
    reason = "Service fee is not enough"


class RestrictedBuyer(MarketError):
    code = "RESTRICTED_BUYER"
    reason = "This card has a preferent buyer"

class SystemPaused(MarketError):
    code = "SYSTEM_PAUSED"
    reason = "Pausable: paused"

class OutOfBounds(MarketError):
    code = "OUT_OF_BOUNDS"
    reason = "Fee percentage out of bounds"

class InvalidPrice(MarketError):
    code = "INVALID_PRICE"
    reason = "Price must be greater than zero"

class SettlementError(MarketError):
    """An external ledger refused or failed a transfer."""
    code = "SETTLEMENT_FAILED"
    reason = "Settlement failed"

class InvalidImplementation(MarketError):
    code = "INVALID_IMPLEMENTATION"
    reason = "New implementation is not a compatible market logic"
