"""
Room checkpoints and summaries.

The RoomStateManager is responsible for:
- Saving the full room (teams, participants, bids, results) together with
  the live auction and shuffle state, so a restarted process can resume
  mid-member
- Loading those checkpoints back
- Building the team and results tables shown once the draft is over
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from .auction_controller import AuctionState
from .draft_event import Room
from .exceptions import PersistenceError
from .shuffle_controller import ShuffleController

logger = logging.getLogger(__name__)


class RoomStateManager:
    """Checkpoint storage keyed by room id."""

    def __init__(self, checkpoint_dir: Path):
        """
        Initialize state manager.

        Args:
            checkpoint_dir: Directory for checkpoint files
        """
        self.checkpoint_dir = Path(checkpoint_dir)
        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)

    def checkpoint_path(self, room_id: str) -> Path:
        return self.checkpoint_dir / f"room_{room_id}.json"

    def save_checkpoint(
        self,
        room: Room,
        auction_state: Optional[AuctionState] = None,
        shuffle: Optional[ShuffleController] = None,
        captain_index: int = 0,
        resolver_seed: Optional[int] = None
    ) -> Path:
        """
        Save current room state to JSON for crash recovery.

        Returns:
            Path of the checkpoint file

        Raises:
            PersistenceError: If the write fails
        """
        filepath = self.checkpoint_path(room.room_id)

        checkpoint_data = {
            'room': room.to_dict(),
            'auction_state': auction_state.to_dict() if auction_state else None,
            'shuffle': shuffle.to_dict() if shuffle else None,
            'captain_index': captain_index,
            'resolver_seed': resolver_seed,
            'checkpoint_time': datetime.now().isoformat()
        }

        # Atomic write: write to temp file, then rename
        temp_path = filepath.with_suffix('.tmp')
        try:
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(checkpoint_data, f, indent=2)
            temp_path.replace(filepath)
        except OSError as e:
            raise PersistenceError(f"Failed to save checkpoint for room {room.room_id}: {e}") from e

        logger.info(
            f"Saved checkpoint: room {room.room_id} in {room.phase.value}, "
            f"{len(room.results)} results -> {filepath}"
        )
        return filepath

    def load_checkpoint(self, room_id: str) -> Dict:
        """
        Load room state from JSON checkpoint.

        Returns:
            Dict with 'room', 'auction_state', 'shuffle', 'captain_index' and
            'resolver_seed'

        Raises:
            FileNotFoundError: If checkpoint doesn't exist
        """
        filepath = self.checkpoint_path(room_id)
        if not filepath.exists():
            raise FileNotFoundError(f"Checkpoint not found: {filepath}")

        with open(filepath, 'r', encoding='utf-8') as f:
            checkpoint_data = json.load(f)

        room = Room.from_dict(checkpoint_data['room'])
        auction_data = checkpoint_data.get('auction_state')
        shuffle_data = checkpoint_data.get('shuffle')

        logger.info(
            f"Loaded checkpoint: room {room.room_id} in {room.phase.value}, "
            f"{len(room.results)} results <- {filepath}"
        )

        return {
            'room': room,
            'auction_state': AuctionState.from_dict(auction_data) if auction_data else None,
            'shuffle': ShuffleController.from_dict(shuffle_data) if shuffle_data else None,
            'captain_index': checkpoint_data.get('captain_index', 0),
            'resolver_seed': checkpoint_data.get('resolver_seed')
        }

    def has_checkpoint(self, room_id: str) -> bool:
        return self.checkpoint_path(room_id).exists()


def get_team_summary(room: Room) -> pd.DataFrame:
    """
    Get summary statistics for all teams, in team order.

    Returns:
        DataFrame with team_id, name, captain, members, spent,
        current_points, open_slots
    """
    summary_data = []
    for team_id, team in room.teams.items():
        captain = room.participants.get(team.captain_id)
        spent = sum(r.final_price for r in room.results if r.winner_team_id == team_id)
        summary_data.append({
            'team_id': team_id,
            'name': team.name,
            'captain': captain.nickname if captain else None,
            'members': len(room.team_members(team_id)),
            'spent': spent,
            'current_points': team.current_points,
            'open_slots': room.open_slots(team_id)
        })

    return pd.DataFrame(summary_data)


def results_dataframe(room: Room) -> pd.DataFrame:
    """
    Auction results joined with member and team names, in resolution order.
    """
    columns = [
        'order', 'target_id', 'nickname', 'position', 'winner_team_id',
        'team_name', 'final_price', 'is_auto_assignment'
    ]
    rows = []
    for result in room.results:
        member = room.participants.get(result.target_id)
        team = room.teams.get(result.winner_team_id)
        rows.append({
            'order': result.order,
            'target_id': result.target_id,
            'nickname': member.nickname if member else None,
            'position': member.position if member else None,
            'winner_team_id': result.winner_team_id,
            'team_name': team.name if team else None,
            'final_price': result.final_price,
            'is_auto_assignment': result.is_auto_assignment
        })

    return pd.DataFrame(rows, columns=columns)


def sold_prices(room: Room) -> Dict[str, int]:
    """Map member_id -> price paid, for members sold by bidding."""
    return {
        r.target_id: r.final_price
        for r in room.results
        if not r.is_auto_assignment
    }
