"""WebSocket endpoint streaming market events."""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from typing import Callable, Dict, Optional
import asyncio
import logging

from market.events import EventBus, MarketEvent

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/ws",
    tags=["WebSocket"]
)

# Messages buffered per client before it is dropped as too slow
QUEUE_SIZE = 256

class ConnectionManager:
    """Track market subscribers and queue every committed event for them.

    Broadcasting never waits on a client. Each connection has its own queue
    drained by :meth:`pump`, and a client whose queue fills up is dropped.
    """

    def __init__(self, queue_size: int = QUEUE_SIZE):
        self.queue_size = queue_size
        self.active_connections: Dict[WebSocket, asyncio.Queue] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self, events: EventBus):
        self.detach()
        self._unsubscribe = events.subscribe(self.broadcast)

    def detach(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def connect(self, websocket: WebSocket) -> asyncio.Queue:
        """Accept connection and return its outgoing queue."""
        await websocket.accept()
        queue = asyncio.Queue(maxsize=self.queue_size)
        self.active_connections[websocket] = queue
        logger.info(f"New market connection ({len(self.active_connections)} active)")
        return queue

    def disconnect(self, websocket: WebSocket):
        queue = self.active_connections.pop(websocket, None)
        if queue is None:
            return
        # Wake the pump so it stops
        while not queue.empty():
            queue.get_nowait()
        queue.put_nowait(None)
        logger.info(f"Market connection closed ({len(self.active_connections)} active)")

    async def broadcast(self, event: MarketEvent):
        """Queue an event for every connection, dropping the ones that lag."""
        message = event.to_message()
        for connection, queue in list(self.active_connections.items()):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning(f"Dropping slow client after {queue.qsize()} queued events")
                self.disconnect(connection)

    async def pump(self, websocket: WebSocket, queue: asyncio.Queue):
        """Send queued messages to one client until it is disconnected."""
        while True:
            message = await queue.get()
            if message is None:
                return
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.error(f"Error sending {message.get('event')} to client: {e}")
                self.disconnect(websocket)
                return

@router.websocket("/market")
async def market_websocket(websocket: WebSocket):
    """Stream listing, fee, pause, role and upgrade events.

    Clients may send {"type": "ping"} and receive {"type": "pong"}.
    """
    manager: ConnectionManager = websocket.app.state.connections
    queue = await manager.connect(websocket)
    sender = asyncio.create_task(manager.pump(websocket, queue))
    try:
        while True:
            message = await websocket.receive_json()
            if message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        manager.disconnect(websocket)
        sender.cancel()
