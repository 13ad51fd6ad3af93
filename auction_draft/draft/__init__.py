"""
Live room subsystem for captain auction drafts.

This package runs draft rooms end to end: the phase state machine, the
member shuffle, the bidding rounds and the placement of unsold members,
with every change broadcast as a RoomEvent.
"""

from .draft_event import Phase, Role, RoomConfig, Bid, AuctionResult, Team, Participant, Room
from .events import EventType, RoomEvent
from .event_store import DraftEventStore
from .room_state_manager import RoomStateManager
from .room_engine import RoomEngine
from .session_manager import RoomRegistry

__all__ = [
    'Phase',
    'Role',
    'RoomConfig',
    'Bid',
    'AuctionResult',
    'Team',
    'Participant',
    'Room',
    'EventType',
    'RoomEvent',
    'DraftEventStore',
    'RoomStateManager',
    'RoomEngine',
    'RoomRegistry',
]
