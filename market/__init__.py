"""Market module: a non-custodial fixed-price marketplace for unique assets.

This module provides functionality for:
- Listing assets for sale at a fixed price, optionally time-limited and buyer-restricted
- Changing, retiring, restoring and returning listings
- Selling listings with exact price-plus-fee payment settled on the external ledgers
- Fee policy, pause gate and role-gated administration
- Swapping the logic version of a live deployment without touching its storage
"""

from .errors import (
    MarketError, Unauthorized, MissingRole, NotSeller, NotOwner, NotAuthorizedToList,
    NotFound, DuplicateAsset, InvalidState, AlreadySold, AlreadyRetired, NotRetired,
    OfferExpired, NotPaused, StaleListing, AlreadyInitialized, PaymentMismatch,
    UnderPayment, OverPayment, InsufficientServiceFee, RestrictedBuyer, SystemPaused,
    OutOfBounds, InvalidPrice, SettlementError, InvalidImplementation,
)
from .models import MarketListing, FeePolicy
from .access import AccessControl, DEFAULT_ADMIN_ROLE, PAUSER_ROLE, UPGRADER_ROLE, ROLES
from .events import EventBus, MarketEvent
from .storage import MarketStorage, MemoryStorage
from .engine import MarketLogicV1
from .engine_v2 import MarketLogicV2
from .proxy import Marketplace, IMPLEMENTATIONS, DEFAULT_IMPLEMENTATION

__all__ = [
    'AccessControl', 'DEFAULT_ADMIN_ROLE', 'PAUSER_ROLE', 'UPGRADER_ROLE', 'ROLES',
    'Marketplace', 'MarketLogicV1', 'MarketLogicV2', 'IMPLEMENTATIONS', 'DEFAULT_IMPLEMENTATION',
    'MarketListing', 'FeePolicy', 'EventBus', 'MarketEvent', 'MarketStorage', 'MemoryStorage',
    'MarketError', 'Unauthorized', 'MissingRole', 'NotSeller', 'NotOwner', 'NotAuthorizedToList',
    'NotFound', 'DuplicateAsset', 'InvalidState', 'AlreadySold', 'AlreadyRetired', 'NotRetired',
    'OfferExpired', 'NotPaused', 'StaleListing', 'AlreadyInitialized', 'PaymentMismatch',
    'UnderPayment', 'OverPayment', 'InsufficientServiceFee', 'RestrictedBuyer', 'SystemPaused',
    'OutOfBounds', 'InvalidPrice', 'SettlementError', 'InvalidImplementation',
]
