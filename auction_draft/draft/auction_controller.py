"""
Auction round controller.

Drives one member at a time through bid -> countdown -> resolution and is
the only code path allowed to move points or members between teams.

Callers must serialize access (RoomEngine holds the room lock around every
call); each bid is checked and applied against the price at the moment it
is processed, never the price the bidder last saw.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from ..bid_pricing import bid_rejection_reason, next_min_bid
from .draft_event import AuctionResult, Bid, Room
from .exceptions import BidRejectedError, InternalStateError, ValidationError

logger = logging.getLogger(__name__)

# Bid rejection reason codes (pricing reasons come from bid_pricing)
REASON_NO_ACTIVE_ITEM = 'no_active_item'
REASON_TIMER_NOT_RUNNING = 'timer_not_running'
REASON_STALE_PRICE = 'stale_price'
REASON_ROSTER_FULL = 'roster_full'
REASON_UNKNOWN_TEAM = 'unknown_team'


@dataclass
class AuctionState:
    """Working set for the member currently on the block."""

    current_item_id: Optional[str] = None
    current_price: int = 0
    leading_team_id: Optional[str] = None
    bid_history: List[Bid] = field(default_factory=list)   # Append-only, oldest first
    timer: int = 0                                          # Tenths of a second
    timer_running: bool = False
    pending_queue: List[str] = field(default_factory=list)
    unsold_queue: List[str] = field(default_factory=list)

    def recent_bids(self) -> List[Bid]:
        """Bid history for display, most recent first."""
        return list(reversed(self.bid_history))

    def to_dict(self) -> dict:
        return {
            'current_item_id': self.current_item_id,
            'current_price': self.current_price,
            'leading_team_id': self.leading_team_id,
            'bid_history': [bid.to_dict() for bid in self.bid_history],
            'timer': self.timer,
            'timer_running': self.timer_running,
            'pending_queue': list(self.pending_queue),
            'unsold_queue': list(self.unsold_queue)
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AuctionState':
        return cls(
            current_item_id=data.get('current_item_id'),
            current_price=data.get('current_price', 0),
            leading_team_id=data.get('leading_team_id'),
            bid_history=[Bid.from_dict(b) for b in data.get('bid_history', [])],
            timer=data.get('timer', 0),
            timer_running=data.get('timer_running', False),
            pending_queue=list(data.get('pending_queue', [])),
            unsold_queue=list(data.get('unsold_queue', []))
        )


@dataclass(frozen=True)
class Resolution:
    """What resolve() decided for one member."""
    item_id: str
    sold: bool
    result: Optional[AuctionResult] = None


class AuctionRoundController:
    """Bidding loop over the ordered member queue."""

    def __init__(self, room: Room, state: Optional[AuctionState] = None):
        self.room = room
        self.state = state or AuctionState()

    @property
    def active(self) -> bool:
        return self.state.current_item_id is not None

    def load_queue(self, item_ids: Sequence[str]) -> None:
        """
        Set the primary queue for the auction phase.

        Raises:
            ValidationError: While a member is on the block
        """
        if self.active:
            raise ValidationError("Cannot reload the queue while a member is on the block", 'item_active')
        self.state.pending_queue = list(item_ids)
        self.state.unsold_queue = []
        logger.info(f"Room {self.room.room_id}: auction queue loaded with {len(item_ids)} members")

    def is_drained(self) -> bool:
        """True when nothing is active, pending or unsold."""
        return not self.active and not self.state.pending_queue and not self.state.unsold_queue

    def start_item(self, item_id: str) -> None:
        """
        Put a member on the block.

        Args:
            item_id: Member id, must be in the pending queue

        Raises:
            ValidationError: If a member is already active or item_id is not pending
        """
        if self.active:
            raise ValidationError(
                f"Member {self.state.current_item_id} is still on the block", 'item_active'
            )
        if item_id not in self.state.pending_queue:
            raise ValidationError(f"Member {item_id} is not in the pending queue", 'not_pending')

        self.state.pending_queue.remove(item_id)
        self.state.current_item_id = item_id
        self.state.current_price = 0
        self.state.leading_team_id = None
        self.state.bid_history = []
        self.state.timer = self.room.config.initial_timer
        self.state.timer_running = True
        self.room.current_item_id = item_id

        logger.info(
            f"Room {self.room.room_id}: {self._nickname(item_id)} on the block "
            f"({len(self.state.pending_queue)} pending)"
        )

    def start_next(self) -> Optional[str]:
        """Start the head of the pending queue, if any."""
        if not self.state.pending_queue:
            return None
        item_id = self.state.pending_queue[0]
        self.start_item(item_id)
        return item_id

    def place_bid(self, team_id: str, amount: int, observed_price: Optional[int] = None) -> Bid:
        """
        Validate and apply a bid in one step.

        Args:
            team_id: Bidding team
            amount: Points offered
            observed_price: Price the bidder saw; a mismatch marks the bid stale

        Returns:
            The recorded Bid

        Raises:
            BidRejectedError: If the bid is invalid; state is left unchanged
        """
        state = self.state

        if not self.active:
            raise BidRejectedError("No member is on the block", REASON_NO_ACTIVE_ITEM)

        if not state.timer_running:
            raise BidRejectedError("Bidding is closed for this member", REASON_TIMER_NOT_RUNNING)

        team = self.room.teams.get(team_id)
        if team is None:
            raise BidRejectedError(f"Unknown team {team_id}", REASON_UNKNOWN_TEAM)

        if observed_price is not None and observed_price != state.current_price:
            raise BidRejectedError(
                f"Price moved to {state.current_price}p (bid placed against {observed_price}p)",
                REASON_STALE_PRICE
            )

        if self.room.open_slots(team_id) <= 0:
            raise BidRejectedError(f"{team.name} has no open member slots", REASON_ROSTER_FULL)

        reason = bid_rejection_reason(
            state.current_price, amount, team.current_points, **self.room.config.tier_kwargs()
        )
        if reason:
            minimum = next_min_bid(state.current_price, **self.room.config.tier_kwargs())
            raise BidRejectedError(
                f"Bid of {amount}p rejected for {team.name}: need {minimum}p-"
                f"{team.current_points}p",
                reason
            )

        if amount <= state.current_price:
            raise InternalStateError(
                f"Pricing accepted {amount}p against current price {state.current_price}p"
            )

        bid = Bid(
            team_id=team_id,
            target_id=state.current_item_id,
            amount=amount,
            timestamp=datetime.now()
        )

        state.current_price = amount
        state.leading_team_id = team_id
        state.bid_history.append(bid)
        self.room.bids.append(bid)
        self._extend_timer()

        logger.debug(
            f"Room {self.room.room_id}: {team.name} bids {amount}p on "
            f"{self._nickname(bid.target_id)} (timer {state.timer})"
        )
        return bid

    def tick(self) -> int:
        """
        Count the timer down by one unit.

        Reaching zero stops the timer but does not resolve the member.

        Returns:
            Remaining timer value
        """
        if not self.state.timer_running:
            return self.state.timer

        self.state.timer = max(self.state.timer - 1, 0)
        if self.state.timer == 0:
            self.state.timer_running = False
            logger.info(f"Room {self.room.room_id}: timer expired on {self._nickname(self.state.current_item_id)}")

        return self.state.timer

    def resolve(self) -> Resolution:
        """
        Settle the active member after the timer ran out.

        A leading bid becomes a sale; no bids sends the member to the unsold
        queue. Either way the block is cleared.

        Raises:
            InternalStateError: If no member is active
            ValidationError: If the timer has not reached zero
        """
        if not self.active:
            raise InternalStateError("resolve() called with no member on the block")

        if self.state.timer_running or self.state.timer > 0:
            raise ValidationError(
                f"Timer still running ({self.state.timer})", 'timer_running'
            )

        item_id = self.state.current_item_id
        leading_team_id = self.state.leading_team_id

        if leading_team_id is not None:
            result = self._settle(item_id, leading_team_id, self.state.current_price, auto=False)
            resolution = Resolution(item_id=item_id, sold=True, result=result)
        else:
            if item_id not in self.state.unsold_queue:
                self.state.unsold_queue.append(item_id)
            logger.info(f"Room {self.room.room_id}: {self._nickname(item_id)} passed (no bids)")
            resolution = Resolution(item_id=item_id, sold=False)

        self._clear_block()
        return resolution

    def pass_item(self) -> Resolution:
        """
        Close the block when nobody has bid, before or after expiry.

        Raises:
            InternalStateError: If no member is active
            ValidationError: If a bid is already leading
        """
        if not self.active:
            raise InternalStateError("pass_item() called with no member on the block")
        if self.state.leading_team_id is not None:
            raise ValidationError("Cannot pass a member with a leading bid", 'has_bids')

        self.state.timer = 0
        self.state.timer_running = False
        return self.resolve()

    def settle_auto_assignment(self, item_id: str, team_id: str) -> AuctionResult:
        """
        Place an unsold member on a team for free.

        Raises:
            ValidationError: If the member is not in the unsold queue or the team is full
        """
        if item_id not in self.state.unsold_queue:
            raise ValidationError(f"Member {item_id} is not unsold", 'not_unsold')
        if team_id not in self.room.teams:
            raise ValidationError(f"Unknown team {team_id}", REASON_UNKNOWN_TEAM)
        if self.room.open_slots(team_id) <= 0:
            raise ValidationError(f"Team {team_id} has no open member slots", REASON_ROSTER_FULL)

        self.state.unsold_queue.remove(item_id)
        return self._settle(item_id, team_id, 0, auto=True)

    def reset(self) -> None:
        self.state = AuctionState()
        self.room.current_item_id = None

    def _settle(self, item_id: str, team_id: str, price: int, auto: bool) -> AuctionResult:
        if self.room.result_for(item_id) is not None:
            raise InternalStateError(f"Member {item_id} already has a result")

        team = self.room.teams[team_id]
        member = self.room.participants[item_id]

        if price > team.current_points:
            raise InternalStateError(
                f"{team.name} cannot pay {price}p with {team.current_points}p left"
            )

        result = AuctionResult(
            target_id=item_id,
            winner_team_id=team_id,
            final_price=price,
            order=len(self.room.results) + 1,
            is_auto_assignment=auto
        )

        team.current_points -= price
        member.team_id = team_id
        self.room.results.append(result)

        logger.info(
            f"Room {self.room.room_id}: {member.nickname} -> {team.name} "
            f"({'auto' if auto else f'{price}p'}) | {team.current_points}p left"
        )
        return result

    def _extend_timer(self) -> None:
        floor = self.room.config.min_timer_threshold
        if self.state.timer <= floor:
            self.state.timer = floor
        else:
            self.state.timer += self.room.config.bid_time_extension

    def _clear_block(self) -> None:
        self.state.current_item_id = None
        self.state.current_price = 0
        self.state.leading_team_id = None
        self.state.bid_history = []
        self.state.timer = 0
        self.state.timer_running = False
        self.room.current_item_id = None

    def _nickname(self, participant_id: Optional[str]) -> str:
        participant = self.room.participants.get(participant_id)
        return participant.nickname if participant else str(participant_id)
