"""
API request/response models for the draft room endpoints.

Transforms engine objects (PhaseOutcome, Bid, Resolution, RoomEngine) into
the response shapes returned by api_server.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from .. import config
from .auction_controller import Resolution
from .draft_event import Bid
from .phase_machine import PhaseOutcome
from .room_engine import RoomEngine


# ========== Requests ==========

class ParticipantSpec(BaseModel):
    """Captain or member supplied at room creation."""
    nickname: str = Field(..., min_length=1, max_length=40)
    position: str = Field('', max_length=40)
    description: Optional[str] = Field(None, max_length=200)


class CaptainSpec(ParticipantSpec):
    team_name: Optional[str] = Field(None, max_length=40, description="Team name (Team N if omitted)")
    captain_value: int = Field(config.DEFAULT_CAPTAIN_VALUE, ge=0, description="Points taken from the team pool")


class CreateRoomRequest(BaseModel):
    """Request model for POST /rooms."""
    title: str = Field(..., min_length=1, max_length=80)
    team_count: int = Field(
        config.DEFAULT_TEAM_COUNT, ge=config.MIN_TEAM_COUNT, le=config.MAX_TEAM_COUNT
    )
    member_per_team: int = Field(config.DEFAULT_MEMBER_PER_TEAM, ge=1, le=20)
    total_points: int = Field(config.DEFAULT_TOTAL_POINTS, ge=1)
    captains: List[CaptainSpec] = Field(default_factory=list)
    members: List[ParticipantSpec] = Field(default_factory=list)


class CreateFromTemplateRequest(BaseModel):
    """Request model for POST /rooms/from-template."""
    template_id: str
    title: Optional[str] = None
    team_names: Optional[List[str]] = Field(None, description="Teams to include (all if omitted)")
    total_points: Optional[int] = Field(None, ge=1)


class ActorRequest(BaseModel):
    """Any host/captain action: who is asking."""
    actor_id: str = Field(..., description="Participant id of the caller")


class StartShuffleRequest(ActorRequest):
    seed: Optional[int] = Field(None, ge=1, le=config.SEED_MAX, description="Fixed seed (random if omitted)")


class BidRequest(ActorRequest):
    amount: int = Field(..., ge=1, description="Points offered")
    observed_price: Optional[int] = Field(
        None, ge=0, description="Price the bidder saw; a bid against a moved price is rejected"
    )


# ========== Responses ==========

class RoomCreatedResponse(BaseModel):
    room_id: str
    title: str
    phase: str
    participants: List[Dict[str, Any]]


class RoomListItem(BaseModel):
    room_id: str
    title: str
    phase: str
    team_count: int
    member_count: int


class RoomListResponse(BaseModel):
    updated_at: str = Field(description="ISO-8601 timestamp")
    rooms: List[RoomListItem]


class PhaseOutcomeResponse(BaseModel):
    advanced: bool
    phase: str
    previous_phase: str
    reason: Optional[str] = None
    detail: Optional[str] = None
    sequence: int


class BidResponse(BaseModel):
    accepted: bool = True
    bid: Dict[str, Any]
    current_price: int
    next_min_bid: int
    timer: int
    sequence: int


class ResolutionResponse(BaseModel):
    item_id: str
    sold: bool
    result: Optional[Dict[str, Any]] = None
    sequence: int


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx from the room endpoints."""
    error: str
    reason: Optional[str] = None
    detail: str


# ========== Serializer Functions ==========

def serialize_room_created(engine: RoomEngine) -> RoomCreatedResponse:
    room = engine.room
    return RoomCreatedResponse(
        room_id=room.room_id,
        title=room.title,
        phase=room.phase.value,
        participants=[p.to_dict() for p in room.participants.values()]
    )


def serialize_room_list(engines: List[RoomEngine]) -> RoomListResponse:
    rooms = [
        RoomListItem(
            room_id=engine.room.room_id,
            title=engine.room.title,
            phase=engine.room.phase.value,
            team_count=engine.room.team_count,
            member_count=len(engine.room.members())
        )
        for engine in engines
    ]
    return RoomListResponse(updated_at=datetime.now().isoformat(), rooms=rooms)


def serialize_phase_outcome(outcome: PhaseOutcome, engine: RoomEngine) -> PhaseOutcomeResponse:
    return PhaseOutcomeResponse(sequence=engine.sequence, **outcome.to_dict())


def serialize_bid(bid: Bid, engine: RoomEngine) -> BidResponse:
    """
    Transform an accepted Bid into the bidder's response.

    Args:
        bid: Bid returned by RoomEngine.place_bid
        engine: Engine the bid was placed on (for the post-bid price and timer)

    Returns:
        BidResponse carrying the minimum for the next bid
    """
    auction = engine.snapshot()['auction']
    return BidResponse(
        bid=bid.to_dict(),
        current_price=auction['current_price'],
        next_min_bid=auction['next_min_bid'],
        timer=auction['timer'],
        sequence=engine.sequence
    )


def serialize_resolution(resolution: Resolution, engine: RoomEngine) -> ResolutionResponse:
    return ResolutionResponse(
        item_id=resolution.item_id,
        sold=resolution.sold,
        result=resolution.result.to_dict() if resolution.result else None,
        sequence=engine.sequence
    )


def serialize_error(error: Exception) -> Dict[str, Any]:
    return ErrorResponse(
        error=type(error).__name__,
        reason=getattr(error, 'reason', None),
        detail=str(error)
    ).model_dump()
