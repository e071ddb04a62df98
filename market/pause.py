"""Pause gate.

A market-wide switch held in storage. Only PAUSER_ROLE holders flip it, and
every mutating trading operation checks it before any other validation.
"""
import asyncio
import logging
from typing import Optional

from .access import AccessControl, PAUSER_ROLE
from .errors import NotPaused, SystemPaused
from .events import EventBus, Paused, Unpaused
from .storage import MarketStorage

logger = logging.getLogger(__name__)


class PauseGate:
    def __init__(
        self,
        storage: MarketStorage,
        access: AccessControl,
        events: Optional[EventBus] = None,
        lock: Optional[asyncio.Lock] = None
    ):
        self.storage = storage
        self.access = access
        self.events = events
        self.lock = lock if lock is not None else asyncio.Lock()

    async def is_paused(self) -> bool:
        return await self.storage.is_paused()

    async def require_active(self) -> None:
        if await self.storage.is_paused():
            raise SystemPaused()

    async def pause(self, caller: str) -> None:
        async with self.lock:
            await self.access.check_role(PAUSER_ROLE, caller)
            if not await self.storage.swap_paused(False, True):
                raise SystemPaused()

        logger.info(f"Market paused by {caller}")
        if self.events:
            await self.events.publish(Paused(account=caller))

    async def unpause(self, caller: str) -> None:
        async with self.lock:
            await self.access.check_role(PAUSER_ROLE, caller)
            if not await self.storage.swap_paused(True, False):
                raise NotPaused()

        logger.info(f"Market unpaused by {caller}")
        if self.events:
            await self.events.publish(Unpaused(account=caller))
