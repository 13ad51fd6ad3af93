"""
Typed events emitted by the engine.

Each event carries enough data for a client to rebuild the visible state
without replaying history.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict


class EventType(str, Enum):
    PHASE_CHANGED = 'PHASE_CHANGED'
    CAPTAIN_INTRO_ADVANCED = 'CAPTAIN_INTRO_ADVANCED'
    SHUFFLE_STARTED = 'SHUFFLE_STARTED'
    SHUFFLE_REVEALED = 'SHUFFLE_REVEALED'
    SHUFFLE_COMPLETED = 'SHUFFLE_COMPLETED'
    AUCTION_STARTED = 'AUCTION_STARTED'
    BID_ACCEPTED = 'BID_ACCEPTED'
    TIMER_SYNC = 'TIMER_SYNC'
    ITEM_SOLD = 'ITEM_SOLD'
    ITEM_PASSED = 'ITEM_PASSED'
    NEXT_ROUND_STARTED = 'NEXT_ROUND_STARTED'
    ITEMS_AUTO_ASSIGNED = 'ITEMS_AUTO_ASSIGNED'
    DRAFT_RESET = 'DRAFT_RESET'


@dataclass(frozen=True)
class RoomEvent:
    """One broadcast from a room's authoritative sequence."""

    type: EventType
    room_id: str
    sequence: int                         # Monotonic per room
    payload: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            'type': self.type.value,
            'room_id': self.room_id,
            'sequence': self.sequence,
            'payload': self.payload,
            'timestamp': self.timestamp.isoformat()
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'RoomEvent':
        return cls(
            type=EventType(data['type']),
            room_id=data['room_id'],
            sequence=data['sequence'],
            payload=data.get('payload', {}),
            timestamp=datetime.fromisoformat(data['timestamp'])
        )
