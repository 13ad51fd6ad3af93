"""
Authoritative sequencer for one draft room.

The RoomEngine coordinates all components of a room:
- Phase state machine (host-driven transitions)
- Shuffle controller (auction order and reveal)
- Auction round controller (bids, timer, settlement)
- Unsold-item resolver (free placements once the queue is empty)
- Transport (publishes a RoomEvent after every change) and persistence
  (bid/result log and checkpoints)

Every action runs under the room lock, so bids, ticks and host commands are
applied one at a time in arrival order. In-memory state is always updated
and broadcast before anything is written; a failed write surfaces as
PersistenceError afterwards without undoing the change.
"""

import logging
import threading
from typing import Dict, List, Optional

from .. import config
from ..bid_pricing import next_min_bid
from .auction_controller import AuctionRoundController, AuctionState, Resolution
from .draft_event import Bid, Participant, Phase, Role, Room
from .event_store import KIND_PHASE, KIND_RESET, DraftEventStore
from .events import EventType, RoomEvent
from .exceptions import AuthorizationError, InternalStateError, PersistenceError
from .phase_machine import PhaseOutcome, PhaseStateMachine, require_host
from .room_state_manager import RoomStateManager, sold_prices
from .shuffle_controller import ShuffleController
from .transport import PresenceFeed, RoomChannel
from .unsold_resolver import UnsoldItemResolver

logger = logging.getLogger(__name__)


class RoomEngine:
    """Runs one room from WAITING to FINISHED."""

    def __init__(
        self,
        room: Room,
        channel: Optional[RoomChannel] = None,
        presence: Optional[PresenceFeed] = None,
        event_store: Optional[DraftEventStore] = None,
        state_manager: Optional[RoomStateManager] = None,
        auction_state: Optional[AuctionState] = None,
        shuffle: Optional[ShuffleController] = None,
        captain_index: int = 0,
        resolver_seed: Optional[int] = None
    ):
        """
        Initialize room engine.

        Args:
            room: Room to run
            channel: Event channel (a fresh one if None)
            presence: Presence feed written by the transport layer
            event_store: Optional bid/result log
            state_manager: Optional checkpoint storage
            auction_state: Restored auction snapshot, if resuming
            shuffle: Restored shuffle controller, if resuming
            captain_index: Restored captain introduction cursor
            resolver_seed: Restored seed for unsold placements
        """
        self.room = room
        self.channel = channel or RoomChannel(room.room_id)
        self.presence = presence or PresenceFeed(room.room_id)
        self.event_store = event_store
        self.state_manager = state_manager

        self.shuffle = shuffle or ShuffleController()
        self.auction = AuctionRoundController(room, auction_state)
        self.resolver = UnsoldItemResolver(self.auction, seed=resolver_seed)
        self.phases = PhaseStateMachine(
            room,
            is_online=self.presence.is_online,
            shuffle_complete=lambda: self.shuffle.is_complete,
            auction_drained=self._auction_drained
        )
        self.phases.captain_index = captain_index

        self._lock = threading.RLock()
        self._sequence = 0
        self._pending_writes: List[tuple] = []

    @classmethod
    def from_checkpoint(
        cls,
        state_manager: RoomStateManager,
        room_id: str,
        **kwargs
    ) -> 'RoomEngine':
        """Rebuild an engine from the last saved checkpoint of a room."""
        checkpoint = state_manager.load_checkpoint(room_id)
        return cls(
            checkpoint['room'],
            state_manager=state_manager,
            auction_state=checkpoint['auction_state'],
            shuffle=checkpoint['shuffle'],
            captain_index=checkpoint['captain_index'],
            resolver_seed=checkpoint['resolver_seed'],
            **kwargs
        )

    @property
    def room_id(self) -> str:
        return self.room.room_id

    @property
    def sequence(self) -> int:
        return self._sequence

    # ------------------------------------------------------------------
    # Phase actions
    # ------------------------------------------------------------------

    def advance_phase(self, actor_id: str) -> PhaseOutcome:
        """
        Host request to move to the next phase.

        Returns:
            PhaseOutcome; advanced=False with a reason when a precondition
            is not met (nothing is broadcast in that case)
        """
        with self._lock:
            actor = self._actor(actor_id)
            outcome = self.phases.advance(actor)
            if outcome.advanced:
                self._enter_phase(outcome)
            self._flush(checkpoint=outcome.advanced)
            return outcome

    def next_captain(self, actor_id: str) -> PhaseOutcome:
        """Introduce the next captain; after the last one the room enters SHUFFLE."""
        with self._lock:
            actor = self._actor(actor_id)
            outcome = self.phases.next_captain(actor)
            if outcome.advanced:
                self._enter_phase(outcome)
            else:
                self._emit(EventType.CAPTAIN_INTRO_ADVANCED, self._captain_payload())
            self._flush(checkpoint=True)
            return outcome

    # ------------------------------------------------------------------
    # Shuffle actions
    # ------------------------------------------------------------------

    def start_shuffle(self, actor_id: str, seed: Optional[int] = None) -> List[str]:
        """
        Compute the auction order for every unplaced member.

        Returns:
            Member ids in auction order
        """
        with self._lock:
            require_host(self._actor(actor_id), 'start the shuffle')
            self.phases.require_phase(Phase.SHUFFLE)

            member_ids = [m.participant_id for m in self.room.members() if m.team_id is None]
            order = self.shuffle.start(member_ids, seed=seed)
            for member_id, auction_order in self.shuffle.auction_orders().items():
                self.room.participants[member_id].auction_order = auction_order

            self._emit(EventType.SHUFFLE_STARTED, self._shuffle_payload())
            if self.shuffle.is_complete:
                self._emit(EventType.SHUFFLE_COMPLETED, self._shuffle_payload(full_order=True))

            self._flush(checkpoint=True)
            return order

    def reveal_next(self, actor_id: str) -> str:
        """Reveal the next member of the auction order."""
        with self._lock:
            require_host(self._actor(actor_id), 'reveal the order')
            self.phases.require_phase(Phase.SHUFFLE)

            member_id = self.shuffle.reveal_next()
            payload = self._shuffle_payload()
            payload['member'] = self.room.participants[member_id].to_dict()
            self._emit(EventType.SHUFFLE_REVEALED, payload)

            if self.shuffle.is_complete:
                self._emit(EventType.SHUFFLE_COMPLETED, self._shuffle_payload(full_order=True))

            self._flush(checkpoint=self.shuffle.is_complete)
            return member_id

    # ------------------------------------------------------------------
    # Auction actions
    # ------------------------------------------------------------------

    def place_bid(self, actor_id: str, amount: int, observed_price: Optional[int] = None) -> Bid:
        """
        Bid on the member on the block for the actor's team.

        Raises:
            AuthorizationError: If the actor is not a team captain
            InvalidPhaseError: Outside AUCTION
            BidRejectedError: If the bid is invalid (state unchanged)
        """
        with self._lock:
            actor = self._actor(actor_id)
            team = self.room.team_for_captain(actor.participant_id)
            if actor.role != Role.CAPTAIN or team is None:
                raise AuthorizationError(f"{actor.nickname} is not a team captain and cannot bid")
            self.phases.require_phase(Phase.AUCTION)

            bid = self.auction.place_bid(team.team_id, amount, observed_price=observed_price)

            payload = self._auction_payload()
            payload['bid'] = bid.to_dict()
            self._emit(EventType.BID_ACCEPTED, payload)

            if self.event_store is not None:
                self._pending_writes.append((self.event_store.append_bid, bid))
            self._flush()
            return bid

    def tick(self) -> Optional[int]:
        """
        Count the active timer down by one unit.

        Broadcasts TIMER_SYNC on every whole second and at expiry. An expired
        member stays on the block until the host resolves or passes it.

        Returns:
            Remaining timer value, or None if no timer is running
        """
        with self._lock:
            if self.room.phase != Phase.AUCTION or not self.auction.state.timer_running:
                return None

            remaining = self.auction.tick()
            if remaining == 0 or remaining % config.TIMER_SYNC_EVERY == 0:
                self._emit(EventType.TIMER_SYNC, {
                    'item_id': self.auction.state.current_item_id,
                    'timer': remaining,
                    'timer_running': self.auction.state.timer_running,
                    'current_price': self.auction.state.current_price,
                    'leading_team_id': self.auction.state.leading_team_id
                })

            if remaining == 0:
                self._flush(checkpoint=True)

            return remaining

    def resolve(self, actor_id: str) -> Resolution:
        """
        Host settles the member on the block once its timer has run out.

        The leading team buys the member; with no bids it goes to the
        unsold queue.

        Raises:
            InternalStateError: If no member is on the block
            ValidationError: If the timer has not reached zero
        """
        with self._lock:
            require_host(self._actor(actor_id), 'resolve a member')
            self.phases.require_phase(Phase.AUCTION)

            resolution = self.auction.resolve()
            self._after_resolution(resolution)
            self._flush(checkpoint=True)
            return resolution

    def pass_item(self, actor_id: str) -> Resolution:
        """Host closes the block on a member nobody bid on, running or expired."""
        with self._lock:
            require_host(self._actor(actor_id), 'pass a member')
            self.phases.require_phase(Phase.AUCTION)

            resolution = self.auction.pass_item()
            self._after_resolution(resolution)
            self._flush(checkpoint=True)
            return resolution

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset(self, actor_id: str) -> None:
        """
        Host-only full reset back to WAITING.

        Bids, results and auction state are discarded, balances restored to
        total - captain_value, members unplaced and auction order cleared.
        Ids and configuration are kept.
        """
        with self._lock:
            require_host(self._actor(actor_id), 'reset the draft')

            self.auction.reset()
            self.shuffle.reset()
            self.resolver.seed = None
            self.resolver.step = 0
            self.phases.reset()

            self.room.bids = []
            self.room.results = []
            self.room.current_item_id = None
            for team in self.room.teams.values():
                team.current_points = self.room.starting_points(team)
            for member in self.room.members():
                member.team_id = None
                member.auction_order = None

            self._validate()
            logger.warning(f"Room {self.room_id}: draft reset by {actor_id}")

            self._emit(EventType.DRAFT_RESET, {'room': self.snapshot()})
            if self.event_store is not None:
                self._pending_writes.append(
                    (lambda data: self.event_store.append_record(KIND_RESET, data), {'actor_id': actor_id})
                )
            self._flush(checkpoint=True)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict:
        """Full visible state of the room, presence merged in."""
        with self._lock:
            online = self.presence.online_ids()
            participants = []
            for participant in self.room.participants.values():
                data = participant.to_dict()
                data['is_online'] = participant.participant_id in online
                participants.append(data)

            current = self.phases.current_captain()
            return {
                'room_id': self.room.room_id,
                'title': self.room.title,
                'phase': self.room.phase.value,
                'config': self.room.config.to_dict(),
                'sequence': self._sequence,
                'teams': [team.to_dict() for team in self.room.teams.values()],
                'participants': participants,
                'captain_index': self.phases.captain_index,
                'current_captain_id': current.participant_id if current else None,
                'shuffle': self._shuffle_payload(full_order=self.shuffle.is_complete),
                'auction': self._auction_payload(),
                'results': [r.to_dict() for r in self.room.results]
            }

    def room_summary(self) -> Dict:
        """
        Final rosters and sold prices, team by team. No ranking is computed.
        """
        with self._lock:
            teams = []
            for team_id, team in self.room.teams.items():
                captain = self.room.participants.get(team.captain_id)
                teams.append({
                    'team': team.to_dict(),
                    'captain': captain.to_dict() if captain else None,
                    'members': [m.to_dict() for m in self.room.team_members(team_id)],
                    'spent': self.room.starting_points(team) - team.current_points
                })

            return {
                'room_id': self.room.room_id,
                'phase': self.room.phase.value,
                'teams': teams,
                'sold_prices': sold_prices(self.room),
                'unsold': list(self.auction.state.unsold_queue),
                'results': [r.to_dict() for r in self.room.results]
            }

    def save_checkpoint(self) -> None:
        """Write a checkpoint now (no-op without a state manager)."""
        with self._lock:
            if self.state_manager is None:
                return
            self.state_manager.save_checkpoint(
                self.room,
                auction_state=self.auction.state,
                shuffle=self.shuffle,
                captain_index=self.phases.captain_index,
                resolver_seed=self.resolver.seed
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _actor(self, actor_id: str) -> Participant:
        actor = self.room.participants.get(actor_id)
        if actor is None:
            raise AuthorizationError(f"Unknown participant {actor_id} in room {self.room_id}")
        return actor

    def _enter_phase(self, outcome: PhaseOutcome) -> None:
        payload = outcome.to_dict()

        if outcome.phase == Phase.CAPTAIN_INTRO:
            payload.update(self._captain_payload())
        elif outcome.phase == Phase.SHUFFLE:
            payload['members'] = [m.to_dict() for m in self.room.members() if m.team_id is None]
        elif outcome.phase == Phase.FINISHED:
            payload['summary'] = self.room_summary()

        self._emit(EventType.PHASE_CHANGED, payload)

        if self.event_store is not None:
            self._pending_writes.append(
                (lambda data: self.event_store.append_record(KIND_PHASE, data), outcome.to_dict())
            )

        if outcome.phase == Phase.AUCTION:
            self._start_auction()

    def _start_auction(self) -> None:
        queue = sorted(
            (m for m in self.room.members() if m.team_id is None and m.auction_order is not None),
            key=lambda m: m.auction_order
        )
        self.auction.load_queue([m.participant_id for m in queue])

        if self.auction.start_next() is not None:
            self._emit(EventType.AUCTION_STARTED, self._auction_payload())
        else:
            logger.info(f"Room {self.room_id}: no members to auction")

    def _after_resolution(self, resolution: Resolution) -> None:
        member = self.room.participants[resolution.item_id]

        if resolution.sold:
            team = self.room.teams[resolution.result.winner_team_id]
            self._emit(EventType.ITEM_SOLD, {
                'result': resolution.result.to_dict(),
                'member': member.to_dict(),
                'team': team.to_dict()
            })
            if self.event_store is not None:
                self._pending_writes.append((self.event_store.append_result, resolution.result))
        else:
            self._emit(EventType.ITEM_PASSED, {
                'member': member.to_dict(),
                'unsold_queue': list(self.auction.state.unsold_queue)
            })

        self._validate()

        if self.auction.start_next() is not None:
            self._emit(EventType.NEXT_ROUND_STARTED, self._auction_payload())
            return

        if self.auction.state.unsold_queue:
            assignments = self.resolver.resolve_all()
            self._validate()
            self._emit(EventType.ITEMS_AUTO_ASSIGNED, {
                'seed': self.resolver.seed,
                'assignments': [a.to_dict() for a in assignments],
                'unsold_queue': list(self.auction.state.unsold_queue),
                'teams': [team.to_dict() for team in self.room.teams.values()]
            })
            if self.event_store is not None:
                for assignment in assignments:
                    self._pending_writes.append((self.event_store.append_result, assignment.result))

    def _auction_drained(self) -> bool:
        # Unsold members no team has room for cannot hold the room open
        state = self.auction.state
        if self.auction.active or state.pending_queue:
            return False
        return not state.unsold_queue or not self.resolver.eligible_teams()

    def _validate(self) -> None:
        try:
            self.room.validate()
        except ValueError as e:
            raise InternalStateError(f"Room {self.room_id} inconsistent: {e}") from e

    def _emit(self, event_type: EventType, payload: Dict) -> RoomEvent:
        self._sequence += 1
        event = RoomEvent(
            type=event_type,
            room_id=self.room_id,
            sequence=self._sequence,
            payload=payload
        )
        self.channel.publish(event)
        return event

    def _flush(self, checkpoint: bool = False) -> None:
        """Run queued writes, then checkpoint. Raises the first write failure."""
        writes, self._pending_writes = self._pending_writes, []
        failure: Optional[PersistenceError] = None

        for write, data in writes:
            try:
                write(data)
            except PersistenceError as e:
                logger.error(f"Room {self.room_id}: {e}", exc_info=True)
                failure = failure or e

        if checkpoint and self.state_manager is not None:
            try:
                self.save_checkpoint()
            except PersistenceError as e:
                logger.error(f"Room {self.room_id}: {e}", exc_info=True)
                failure = failure or e

        if failure is not None:
            raise failure

    def _captain_payload(self) -> Dict:
        captain = self.phases.current_captain()
        team = self.room.team_for_captain(captain.participant_id) if captain else None
        return {
            'captain_index': self.phases.captain_index,
            'captain_count': len(self.room.captains()),
            'captain': captain.to_dict() if captain else None,
            'team': team.to_dict() if team else None
        }

    def _shuffle_payload(self, full_order: bool = False) -> Dict:
        payload = {
            'state': self.shuffle.state.value,
            'seed': self.shuffle.seed,
            'total': self.shuffle.total,
            'revealed_count': self.shuffle.revealed_count,
            'revealed': self.shuffle.revealed(),
            'positions': self.shuffle.presentation()
        }
        if full_order:
            payload['order'] = list(self.shuffle.order)
        return payload

    def _auction_payload(self) -> Dict:
        state = self.auction.state
        item = self.room.participants.get(state.current_item_id) if state.current_item_id else None
        return {
            'item': item.to_dict() if item else None,
            'current_price': state.current_price,
            'next_min_bid': next_min_bid(state.current_price, **self.room.config.tier_kwargs()),
            'leading_team_id': state.leading_team_id,
            'timer': state.timer,
            'timer_running': state.timer_running,
            'recent_bids': [b.to_dict() for b in state.recent_bids()],
            'pending_count': len(state.pending_queue),
            'unsold_queue': list(state.unsold_queue),
            'teams': [team.to_dict() for team in self.room.teams.values()]
        }
