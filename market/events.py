"""Market events and the in-process event bus.

Events are published only after an operation has committed. Subscribers may
be plain callables or coroutine functions; a failing subscriber is logged and
does not affect the operation or other subscribers.
"""
import asyncio
import logging
import time
from collections import deque
from typing import Any, Callable, Deque, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

HISTORY_SIZE = 1000


class MarketEvent(BaseModel):
    timestamp: float = Field(default_factory=time.time)

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_message(self) -> dict:
        return {'event': self.name, 'data': self.model_dump()}


class ListingCreated(MarketEvent):
    asset_id: int
    seller: str
    price: int
    expiry: int
    restricted_buyer: Optional[str] = None

class ListingChanged(MarketEvent):
    asset_id: int
    seller: str
    price: int
    expiry: int
    restricted_buyer: Optional[str] = None

class ListingRetired(MarketEvent):
    asset_id: int
    seller: str

class ListingRestored(MarketEvent):
    asset_id: int
    seller: str

class ListingSold(MarketEvent):
    asset_id: int
    buyer: str
    price: int

class ListingReturned(MarketEvent):
    asset_id: int
    seller: str
    returned_by: str

class Paused(MarketEvent):
    account: str

class Unpaused(MarketEvent):
    account: str

class FeePercentageChanged(MarketEvent):
    percentage: int
    account: str

class RoleGranted(MarketEvent):
    role: str
    principal: str
    sender: str

class RoleRevoked(MarketEvent):
    role: str
    principal: str
    sender: str

class Upgraded(MarketEvent):
    implementation: str


Subscriber = Callable[[MarketEvent], Any]


class EventBus:
    """Fan-out of committed market events to subscribers."""

    def __init__(self, history_size: int = HISTORY_SIZE):
        self._subscribers: List[Subscriber] = []
        self.history: Deque[MarketEvent] = deque(maxlen=history_size)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a subscriber and return a function that removes it."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    async def publish(self, event: MarketEvent) -> None:
        self.history.append(event)
        logger.debug(f"Publishing {event.name}: {event.model_dump()}")

        for subscriber in list(self._subscribers):
            try:
                result = subscriber(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Event subscriber failed on {event.name}: {e}")

    def of_type(self, event_type: type) -> List[MarketEvent]:
        """Return the recorded events of one type, oldest first."""
        return [event for event in self.history if isinstance(event, event_type)]
