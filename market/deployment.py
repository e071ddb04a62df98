"""Open the configured market deployment.

Builds storage and ledger clients from settings, then deploys a fresh market
on empty storage or attaches to the existing deployment.
"""
import logging
from typing import Any, Dict, Optional

from ledgers.rpc import connect_ledgers
from .events import EventBus
from .models import FeePolicy
from .proxy import Marketplace
from .storage import MarketStorage, MemoryStorage

logger = logging.getLogger(__name__)


async def open_storage(settings: Dict[str, Any]) -> MarketStorage:
    if settings['storage'] == 'memory':
        logger.warning("Using in-memory storage; market state is lost on exit")
        return MemoryStorage()

    # Imported here so memory deployments do not need a database driver
    from database import init_db
    from .storage.postgres import PostgresStorage

    pool = await init_db(settings['db_url'])
    return PostgresStorage(pool)


def fee_policy_from_settings(fees: Dict[str, Any]) -> FeePolicy:
    return FeePolicy(
        percentage=fees['percentage'],
        min_percentage=fees['min_percentage'],
        max_percentage=fees['max_percentage'],
        flat_service_fee=fees['flat_service_fee'],
        receiver_a=fees['receiver_a'],
        receiver_b=fees['receiver_b'],
        receiver_a_share=fees['receiver_a_share'],
    )


async def open_marketplace(
    settings: Dict[str, Any],
    storage: Optional[MarketStorage] = None,
    events: Optional[EventBus] = None
) -> Marketplace:
    """Deploy or attach to the market described by ``settings``."""
    storage = storage or await open_storage(settings)
    asset_registry, currency_ledger = connect_ledgers(settings['ledgers'])

    if await storage.is_initialized():
        return await Marketplace.attach(
            storage, asset_registry, currency_ledger,
            market_address=settings['market_address'],
            events=events,
        )

    return await Marketplace.deploy(
        storage, asset_registry, currency_ledger,
        deployer=settings['deployer'],
        market_address=settings['market_address'],
        fee_policy=fee_policy_from_settings(settings['fees']),
        events=events,
    )
