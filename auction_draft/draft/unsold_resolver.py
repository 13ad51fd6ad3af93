"""
Placement of members nobody bought.

Runs once the primary queue is empty. For each unsold member:
- only teams with an open member slot are eligible;
- if every eligible team is out of points, the least-filled one gets the
  member for free;
- otherwise a seeded draw picks among the eligible teams.

All placements are free and flagged as auto-assignments. Members that
already have a result are skipped, so running the resolver twice is safe.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..randomization import draw_index, generate_seed
from .auction_controller import AuctionRoundController
from .draft_event import AuctionResult, Room, Team

logger = logging.getLogger(__name__)

POLICY_DEPLETED = 'depleted'
POLICY_RANDOM = 'random'


@dataclass(frozen=True)
class Assignment:
    """One automatic placement, as broadcast to clients."""
    member_id: str
    team_id: str
    team_name: str
    team_color: str
    policy: str
    step: Optional[int]
    result: AuctionResult

    def to_dict(self) -> dict:
        return {
            'member_id': self.member_id,
            'team_id': self.team_id,
            'team_name': self.team_name,
            'team_color': self.team_color,
            'policy': self.policy,
            'step': self.step,
            'result': self.result.to_dict()
        }


class UnsoldItemResolver:
    """Settles the unsold queue through the auction controller."""

    def __init__(self, controller: AuctionRoundController, seed: Optional[int] = None):
        self.controller = controller
        self.seed = seed
        self.step = 0

    @property
    def room(self) -> Room:
        return self.controller.room

    def eligible_teams(self) -> List[Team]:
        return [t for t in self.room.teams.values() if self.room.open_slots(t.team_id) > 0]

    def resolve_all(self) -> List[Assignment]:
        """
        Place every member in the unsold queue that can be placed.

        Returns:
            Assignments made in this call (empty if there was nothing to do)
        """
        assignments = []
        for item_id in list(self.controller.state.unsold_queue):
            assignment = self.resolve_item(item_id)
            if assignment is not None:
                assignments.append(assignment)

        if assignments:
            logger.info(f"Room {self.room.room_id}: auto-assigned {len(assignments)} unsold member(s)")
        return assignments

    def resolve_item(self, item_id: str) -> Optional[Assignment]:
        """
        Place one unsold member.

        Returns:
            The Assignment, or None if the member was already resolved or no
            team can take it
        """
        if self.room.result_for(item_id) is not None:
            logger.debug(f"Member {item_id} already resolved; skipping")
            return None

        if item_id not in self.controller.state.unsold_queue:
            logger.debug(f"Member {item_id} is not unsold; skipping")
            return None

        eligible = self.eligible_teams()
        if not eligible:
            logger.warning(f"Room {self.room.room_id}: no team has room for unsold member {item_id}")
            return None

        if all(team.current_points == 0 for team in eligible):
            team = min(eligible, key=self._fill_key)
            policy = POLICY_DEPLETED
            step = None
        else:
            if self.seed is None:
                self.seed = generate_seed()
            step = self.step
            team = eligible[draw_index(self.seed, step, len(eligible))]
            self.step += 1
            policy = POLICY_RANDOM

        result = self.controller.settle_auto_assignment(item_id, team.team_id)

        return Assignment(
            member_id=item_id,
            team_id=team.team_id,
            team_name=team.name,
            team_color=team.color,
            policy=policy,
            step=step,
            result=result
        )

    def _fill_key(self, team: Team):
        team_order = list(self.room.teams).index(team.team_id)
        return (len(self.room.team_members(team.team_id)), team_order)
