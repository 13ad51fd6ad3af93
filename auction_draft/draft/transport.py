"""
Realtime transport for draft rooms.

RoomChannel fans engine events out to subscribers (WebSocket connections,
tests, loggers). PresenceFeed tracks who is connected. The engine publishes
to channels and reads presence; only the transport layer writes presence.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional, Set

from .. import config
from .events import RoomEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[RoomEvent], None]


def room_channel_name(room_id: str) -> str:
    return f"{config.ROOM_CHANNEL_PREFIX}:{room_id}"


def presence_channel_name(room_id: str) -> str:
    return f"{config.PRESENCE_CHANNEL_PREFIX}:{room_id}"


class RoomChannel:
    """Publish/subscribe channel for one room."""

    def __init__(self, room_id: str):
        self.room_id = room_id
        self.name = room_channel_name(room_id)
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()
        self.last_event: Optional[RoomEvent] = None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a subscriber.

        Args:
            callback: Called with every published RoomEvent

        Returns:
            Function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: RoomEvent) -> None:
        """
        Deliver an event to every subscriber.

        A failing subscriber is logged and skipped so one broken connection
        cannot stall the room.
        """
        with self._lock:
            subscribers = list(self._subscribers)
            self.last_event = event

        logger.debug(f"[{self.name}] #{event.sequence} {event.type.value}")

        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    f"[{self.name}] Subscriber failed on {event.type.value}: {e}",
                    exc_info=True
                )


class PresenceFeed:
    """Online/offline state per participant for one room."""

    def __init__(self, room_id: str):
        self.room_id = room_id
        self.name = presence_channel_name(room_id)
        self._connections: Dict[str, int] = {}
        self._lock = threading.Lock()

    def join(self, participant_id: str) -> None:
        """Record a connection. A participant may hold several at once."""
        with self._lock:
            self._connections[participant_id] = self._connections.get(participant_id, 0) + 1
        logger.info(f"[{self.name}] {participant_id} online")

    def leave(self, participant_id: str) -> None:
        with self._lock:
            remaining = self._connections.get(participant_id, 0) - 1
            if remaining > 0:
                self._connections[participant_id] = remaining
            else:
                self._connections.pop(participant_id, None)
        logger.info(f"[{self.name}] {participant_id} disconnected")

    def is_online(self, participant_id: str) -> bool:
        with self._lock:
            return participant_id in self._connections

    def online_ids(self) -> Set[str]:
        with self._lock:
            return set(self._connections)
