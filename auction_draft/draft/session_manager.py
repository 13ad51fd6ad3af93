"""
Registry of live draft rooms.

Rooms are independent: each gets its own RoomEngine, event channel,
presence feed and event log. The registry only maps room ids to engines and
wires up their storage.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

from .. import config
from .draft_event import Room, RoomConfig, create_initial_room
from .event_store import DraftEventStore, create_room_filepath
from .exceptions import RoomNotFoundError
from .room_engine import RoomEngine
from .room_state_manager import RoomStateManager
from .templates import room_from_template

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Creates, looks up and removes room engines."""

    def __init__(
        self,
        events_dir: Optional[Path] = None,
        checkpoints_dir: Optional[Path] = None,
        persist: bool = True
    ):
        """
        Initialize room registry.

        Args:
            events_dir: Directory for per-room event logs
            checkpoints_dir: Directory for room checkpoints
            persist: Wire event logs and checkpoints into new engines
        """
        self.events_dir = Path(events_dir or config.DRAFT_EVENTS_DIR)
        self.persist = persist
        self.state_manager = (
            RoomStateManager(Path(checkpoints_dir or config.DRAFT_CHECKPOINTS_DIR))
            if persist else None
        )
        self._engines: Dict[str, RoomEngine] = {}
        self._lock = threading.Lock()

    def create_room(
        self,
        title: str,
        team_count: int = config.DEFAULT_TEAM_COUNT,
        member_per_team: int = config.DEFAULT_MEMBER_PER_TEAM,
        total_points: int = config.DEFAULT_TOTAL_POINTS,
        captains: Optional[List[dict]] = None,
        members: Optional[List[dict]] = None,
        room_config: Optional[RoomConfig] = None
    ) -> RoomEngine:
        """
        Create a WAITING room and its engine.

        Raises:
            ValueError: If the team count is out of range or captains don't fit
        """
        count = room_config.team_count if room_config else team_count
        if not config.MIN_TEAM_COUNT <= count <= config.MAX_TEAM_COUNT:
            raise ValueError(
                f"team_count must be {config.MIN_TEAM_COUNT}-{config.MAX_TEAM_COUNT}, got {count}"
            )

        room = create_initial_room(
            title=title,
            team_count=team_count,
            member_per_team=member_per_team,
            total_points=total_points,
            captains=captains,
            members=members,
            room_config=room_config
        )
        return self.register(room)

    def create_from_template(
        self,
        template: dict,
        title: Optional[str] = None,
        team_names: Optional[List[str]] = None,
        total_points: Optional[int] = None
    ) -> RoomEngine:
        room = room_from_template(
            template,
            title=title,
            team_names=team_names,
            total_points=total_points
        )
        return self.register(room)

    def register(self, room: Room) -> RoomEngine:
        """Build an engine for an existing Room and track it."""
        engine = RoomEngine(
            room,
            event_store=self._event_store(room.room_id),
            state_manager=self.state_manager
        )
        with self._lock:
            self._engines[room.room_id] = engine

        logger.info(
            f"Registered room {room.room_id} '{room.title}': {room.team_count} teams, "
            f"{len(room.members())} members, {room.total_points}p"
        )
        return engine

    def resume(self, room_id: str) -> RoomEngine:
        """
        Restore a room from its checkpoint.

        Raises:
            RoomNotFoundError: If persistence is off or no checkpoint exists
        """
        if self.state_manager is None or not self.state_manager.has_checkpoint(room_id):
            raise RoomNotFoundError(f"No checkpoint for room {room_id}")

        engine = RoomEngine.from_checkpoint(
            self.state_manager,
            room_id,
            event_store=self._event_store(room_id)
        )
        with self._lock:
            self._engines[room_id] = engine

        logger.info(f"Resumed room {room_id} in {engine.room.phase.value}")
        return engine

    def get(self, room_id: str) -> RoomEngine:
        """
        Raises:
            RoomNotFoundError: If the room is unknown
        """
        with self._lock:
            engine = self._engines.get(room_id)
        if engine is None:
            raise RoomNotFoundError(f"Room {room_id} not found")
        return engine

    def list_rooms(self) -> List[RoomEngine]:
        with self._lock:
            return list(self._engines.values())

    def remove(self, room_id: str) -> None:
        with self._lock:
            if self._engines.pop(room_id, None) is None:
                raise RoomNotFoundError(f"Room {room_id} not found")
        logger.info(f"Removed room {room_id}")

    def _event_store(self, room_id: str) -> Optional[DraftEventStore]:
        if not self.persist:
            return None
        return DraftEventStore(create_room_filepath(self.events_dir, room_id))
