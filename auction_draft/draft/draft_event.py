"""
Core data structures for an auction draft room.

These dataclasses represent the state of a captain auction draft: the room
and its frozen configuration, teams with their point balances, participants,
and the immutable Bid / AuctionResult facts produced while bidding.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple
import uuid

from .. import config


class Phase(str, Enum):
    """Room phases, in their only legal order."""
    WAITING = 'WAITING'
    CAPTAIN_INTRO = 'CAPTAIN_INTRO'
    SHUFFLE = 'SHUFFLE'
    AUCTION = 'AUCTION'
    FINISHED = 'FINISHED'


PHASE_ORDER = [
    Phase.WAITING,
    Phase.CAPTAIN_INTRO,
    Phase.SHUFFLE,
    Phase.AUCTION,
    Phase.FINISHED,
]


class Role(str, Enum):
    HOST = 'HOST'
    CAPTAIN = 'CAPTAIN'
    MEMBER = 'MEMBER'
    OBSERVER = 'OBSERVER'


@dataclass(frozen=True)
class RoomConfig:
    """Settings fixed at room creation."""

    total_points: int = config.DEFAULT_TOTAL_POINTS
    team_count: int = config.DEFAULT_TEAM_COUNT
    member_per_team: int = config.DEFAULT_MEMBER_PER_TEAM
    initial_timer: int = config.INITIAL_TIMER              # tenths of a second
    bid_time_extension: int = config.BID_TIME_EXTENSION
    min_timer_threshold: int = config.MIN_TIMER_THRESHOLD
    bid_tiers: Tuple[Tuple[int, int], ...] = tuple(tuple(r) for r in config.BID_UNIT_RULES)
    bid_step_increment: int = config.BID_UNIT_INCREMENT
    bid_step_span: int = config.BID_UNIT_PRICE_THRESHOLD

    def tier_kwargs(self) -> dict:
        """Keyword arguments for the bid_pricing functions."""
        return {
            'rules': self.bid_tiers,
            'step_increment': self.bid_step_increment,
            'step_span': self.bid_step_span,
        }

    def to_dict(self) -> dict:
        return {
            'total_points': self.total_points,
            'team_count': self.team_count,
            'member_per_team': self.member_per_team,
            'initial_timer': self.initial_timer,
            'bid_time_extension': self.bid_time_extension,
            'min_timer_threshold': self.min_timer_threshold,
            'bid_tiers': [list(t) for t in self.bid_tiers],
            'bid_step_increment': self.bid_step_increment,
            'bid_step_span': self.bid_step_span,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'RoomConfig':
        defaults = cls()
        return cls(
            total_points=data.get('total_points', defaults.total_points),
            team_count=data.get('team_count', defaults.team_count),
            member_per_team=data.get('member_per_team', defaults.member_per_team),
            initial_timer=data.get('initial_timer', defaults.initial_timer),
            bid_time_extension=data.get('bid_time_extension', defaults.bid_time_extension),
            min_timer_threshold=data.get('min_timer_threshold', defaults.min_timer_threshold),
            bid_tiers=tuple(tuple(t) for t in data.get('bid_tiers', defaults.bid_tiers)),
            bid_step_increment=data.get('bid_step_increment', defaults.bid_step_increment),
            bid_step_span=data.get('bid_step_span', defaults.bid_step_span),
        )


@dataclass(frozen=True)
class Bid:
    """A single accepted bid. Never mutated once recorded."""

    team_id: str              # Bidding team
    target_id: str            # Member being auctioned
    amount: int               # Points offered
    timestamp: datetime       # When the sequencer accepted it

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'team_id': self.team_id,
            'target_id': self.target_id,
            'amount': self.amount,
            'timestamp': self.timestamp.isoformat()
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Bid':
        """Create Bid from dictionary (JSON deserialization)."""
        return cls(
            team_id=data['team_id'],
            target_id=data['target_id'],
            amount=data['amount'],
            timestamp=datetime.fromisoformat(data['timestamp'])
        )


@dataclass(frozen=True)
class AuctionResult:
    """Outcome of one resolved member: a sale or an automatic placement."""

    target_id: str            # Member placed
    winner_team_id: str       # Team receiving the member
    final_price: int          # Points paid (0 for auto-assignment)
    order: int                # 1-based resolution order within the room
    is_auto_assignment: bool = False
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            'target_id': self.target_id,
            'winner_team_id': self.winner_team_id,
            'final_price': self.final_price,
            'order': self.order,
            'is_auto_assignment': self.is_auto_assignment,
            'timestamp': self.timestamp.isoformat()
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AuctionResult':
        return cls(
            target_id=data['target_id'],
            winner_team_id=data['winner_team_id'],
            final_price=data['final_price'],
            order=data['order'],
            is_auto_assignment=data.get('is_auto_assignment', False),
            timestamp=datetime.fromisoformat(data['timestamp'])
        )


@dataclass
class Team:
    """A team and its point balance."""

    team_id: str
    name: str
    color: str
    captain_id: Optional[str] = None
    captain_value: int = 0            # Points taken from the pool at formation
    current_points: int = 0

    def to_dict(self) -> dict:
        return {
            'team_id': self.team_id,
            'name': self.name,
            'color': self.color,
            'captain_id': self.captain_id,
            'captain_value': self.captain_value,
            'current_points': self.current_points
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Team':
        return cls(
            team_id=data['team_id'],
            name=data['name'],
            color=data['color'],
            captain_id=data.get('captain_id'),
            captain_value=data.get('captain_value', 0),
            current_points=data.get('current_points', 0)
        )


@dataclass
class Participant:
    """Anyone in the room. Members carry the auction order and their team."""

    participant_id: str
    nickname: str
    role: Role
    position: str = ''
    description: Optional[str] = None
    team_id: Optional[str] = None
    auction_order: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'participant_id': self.participant_id,
            'nickname': self.nickname,
            'role': self.role.value,
            'position': self.position,
            'description': self.description,
            'team_id': self.team_id,
            'auction_order': self.auction_order
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Participant':
        return cls(
            participant_id=data['participant_id'],
            nickname=data['nickname'],
            role=Role(data['role']),
            position=data.get('position', ''),
            description=data.get('description'),
            team_id=data.get('team_id'),
            auction_order=data.get('auction_order')
        )


@dataclass
class Room:
    """Aggregate root of one draft session."""

    room_id: str
    title: str
    config: RoomConfig
    teams: Dict[str, Team]                                     # team_id -> Team, in team order
    participants: Dict[str, Participant]                       # participant_id -> Participant
    phase: Phase = Phase.WAITING
    current_item_id: Optional[str] = None
    bids: List[Bid] = field(default_factory=list)
    results: List[AuctionResult] = field(default_factory=list)

    @property
    def total_points(self) -> int:
        return self.config.total_points

    @property
    def team_count(self) -> int:
        return self.config.team_count

    @property
    def member_per_team(self) -> int:
        return self.config.member_per_team

    def participants_with_role(self, role: Role) -> List[Participant]:
        return [p for p in self.participants.values() if p.role == role]

    def members(self) -> List[Participant]:
        """Members eligible for the auction, in creation order."""
        return self.participants_with_role(Role.MEMBER)

    def captains(self) -> List[Participant]:
        """Captains in team order."""
        return [
            self.participants[team.captain_id]
            for team in self.teams.values()
            if team.captain_id in self.participants
        ]

    def team_for_captain(self, participant_id: str) -> Optional[Team]:
        for team in self.teams.values():
            if team.captain_id == participant_id:
                return team
        return None

    def team_members(self, team_id: str) -> List[Participant]:
        return [m for m in self.members() if m.team_id == team_id]

    def open_slots(self, team_id: str) -> int:
        """Member slots a team can still fill."""
        return self.member_per_team - len(self.team_members(team_id))

    def starting_points(self, team: Team) -> int:
        return self.total_points - team.captain_value

    def result_for(self, target_id: str) -> Optional[AuctionResult]:
        for result in self.results:
            if result.target_id == target_id:
                return result
        return None

    def validate(self) -> None:
        """
        Validate room state consistency.

        Raises:
            ValueError: If state is inconsistent
        """
        spent: Dict[str, int] = {team_id: 0 for team_id in self.teams}
        placed = set()

        for result in self.results:
            if result.winner_team_id not in self.teams:
                raise ValueError(f"Result for {result.target_id} names unknown team {result.winner_team_id}")
            if result.target_id in placed:
                raise ValueError(f"Member {result.target_id} has more than one result")
            placed.add(result.target_id)
            spent[result.winner_team_id] += result.final_price

        for team_id, team in self.teams.items():
            expected = self.starting_points(team) - spent[team_id]
            if team.current_points != expected:
                raise ValueError(
                    f"Balance mismatch for {team.name}: {team.current_points}p, "
                    f"expected {expected}p"
                )
            if team.current_points < 0:
                raise ValueError(f"Negative balance for {team.name}: {team.current_points}p")
            if self.open_slots(team_id) < 0:
                raise ValueError(f"{team.name} holds more than {self.member_per_team} members")

        rostered = {m.participant_id for m in self.members() if m.team_id is not None}
        if rostered != placed:
            raise ValueError("Rostered members do not match auction results")

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'room_id': self.room_id,
            'title': self.title,
            'config': self.config.to_dict(),
            'phase': self.phase.value,
            'current_item_id': self.current_item_id,
            'teams': [team.to_dict() for team in self.teams.values()],
            'participants': [p.to_dict() for p in self.participants.values()],
            'bids': [bid.to_dict() for bid in self.bids],
            'results': [result.to_dict() for result in self.results]
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Room':
        """Create Room from dictionary."""
        teams = [Team.from_dict(t) for t in data.get('teams', [])]
        participants = [Participant.from_dict(p) for p in data.get('participants', [])]
        return cls(
            room_id=data['room_id'],
            title=data['title'],
            config=RoomConfig.from_dict(data.get('config', {})),
            teams={team.team_id: team for team in teams},
            participants={p.participant_id: p for p in participants},
            phase=Phase(data.get('phase', Phase.WAITING.value)),
            current_item_id=data.get('current_item_id'),
            bids=[Bid.from_dict(b) for b in data.get('bids', [])],
            results=[AuctionResult.from_dict(r) for r in data.get('results', [])]
        )


def create_initial_room(
    title: str,
    team_count: int = config.DEFAULT_TEAM_COUNT,
    member_per_team: int = config.DEFAULT_MEMBER_PER_TEAM,
    total_points: int = config.DEFAULT_TOTAL_POINTS,
    captains: Optional[List[dict]] = None,
    members: Optional[List[dict]] = None,
    host_nickname: str = 'Host',
    room_id: Optional[str] = None,
    room_config: Optional[RoomConfig] = None
) -> Room:
    """
    Create a room in the WAITING phase.

    Args:
        title: Room title
        team_count: Number of teams
        member_per_team: Member slots per team (captain not included)
        total_points: Starting points per team before captain value
        captains: Optional per-team captain dicts (nickname, position,
                  description, captain_value, team_name)
        members: Optional member dicts (nickname, position, description)
        host_nickname: Display name of the host participant
        room_id: Optional fixed room id (uuid4 hex if None)
        room_config: Optional full configuration (overrides the three counts)

    Returns:
        Room with one host, one captain per team and all members unassigned
    """
    if room_config is None:
        room_config = RoomConfig(
            total_points=total_points,
            team_count=team_count,
            member_per_team=member_per_team
        )

    if room_config.team_count < 1:
        raise ValueError(f"team_count must be positive, got {room_config.team_count}")

    captains = captains or []
    if len(captains) > room_config.team_count:
        raise ValueError(
            f"{len(captains)} captains given for {room_config.team_count} teams"
        )

    participants: Dict[str, Participant] = {}
    host = Participant(participant_id='host', nickname=host_nickname, role=Role.HOST)
    participants[host.participant_id] = host

    teams: Dict[str, Team] = {}
    for i in range(1, room_config.team_count + 1):
        spec = captains[i - 1] if i <= len(captains) else {}
        team_id = f"team_{i:02d}"
        captain_id = f"captain_{i:02d}"
        captain_value = spec.get('captain_value', config.DEFAULT_CAPTAIN_VALUE)

        if captain_value > room_config.total_points:
            raise ValueError(
                f"Captain value {captain_value} exceeds total points {room_config.total_points}"
            )

        teams[team_id] = Team(
            team_id=team_id,
            name=spec.get('team_name', f"Team {i}"),
            color=config.TEAM_COLORS[(i - 1) % len(config.TEAM_COLORS)],
            captain_id=captain_id,
            captain_value=captain_value,
            current_points=room_config.total_points - captain_value
        )
        participants[captain_id] = Participant(
            participant_id=captain_id,
            nickname=spec.get('nickname', f"Captain {i}"),
            role=Role.CAPTAIN,
            position=spec.get('position', ''),
            description=spec.get('description'),
            team_id=team_id
        )

    for i, spec in enumerate(members or [], 1):
        member_id = f"member_{i:02d}"
        participants[member_id] = Participant(
            participant_id=member_id,
            nickname=spec.get('nickname', f"Member {i}"),
            role=Role.MEMBER,
            position=spec.get('position', ''),
            description=spec.get('description')
        )

    return Room(
        room_id=room_id or uuid.uuid4().hex,
        title=title,
        config=room_config,
        teams=teams,
        participants=participants
    )
