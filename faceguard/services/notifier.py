"""
Real-time event fan-out to connected observers.

Delivery is best-effort and at-most-once: events are sent to every observer
that is connected at broadcast time, with no queuing or replay. Observers
whose socket is not open are skipped, and observers whose send fails are
dropped.
"""

import asyncio
import logging
from typing import Any, Dict, Set

from starlette.websockets import WebSocket, WebSocketState

logger = logging.getLogger(__name__)

USER_REGISTERED = "user_registered"
USER_DELETED = "user_deleted"
ACCESS_ATTEMPT = "access_attempt"
CAPTURE_REQUESTED = "capture_requested"
CONNECTED = "connected"


class EventBroadcaster:
    """Publish/subscribe hub owned by the application and injected into workflows."""

    def __init__(self):
        self._observers: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    async def connect(self, websocket: WebSocket) -> None:
        """Accept an observer socket, register it and acknowledge the connection."""
        await websocket.accept()
        async with self._lock:
            self._observers.add(websocket)
        logger.info(f"Observer connected. Total observers: {len(self._observers)}")
        await websocket.send_json({"type": CONNECTED})

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._observers.discard(websocket)
        logger.info(f"Observer disconnected. Total observers: {len(self._observers)}")

    async def broadcast(self, event: Dict[str, Any]) -> int:
        """
        Send an event to every ready observer.

        Args:
            event: JSON-serializable event carrying a `type` field

        Returns:
            Number of observers the event was delivered to
        """
        async with self._lock:
            observers = list(self._observers)

        delivered = 0
        for websocket in observers:
            if (websocket.client_state != WebSocketState.CONNECTED
                    or websocket.application_state != WebSocketState.CONNECTED):
                continue
            try:
                await websocket.send_json(event)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping observer after failed send: {e}")
                await self.disconnect(websocket)

        logger.debug(f"Broadcast {event.get('type')} to {delivered}/{len(observers)} observers")
        return delivered

    async def publish_user_registered(self, user: Dict[str, str]) -> int:
        return await self.broadcast({"type": USER_REGISTERED, "user": user})

    async def publish_user_deleted(self, user: Dict[str, str]) -> int:
        return await self.broadcast({"type": USER_DELETED, "user": user})

    async def publish_access_attempt(self, success: bool, message: str, user: Dict[str, str] = None) -> int:
        event: Dict[str, Any] = {"type": ACCESS_ATTEMPT, "success": success, "message": message}
        if user is not None:
            event["user"] = user
        return await self.broadcast(event)

    async def publish_capture_requested(self, timestamp: int) -> int:
        return await self.broadcast({"type": CAPTURE_REQUESTED, "timestamp": timestamp})
