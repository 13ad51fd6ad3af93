"""
Room phase state machine.

Phases only move forward, one step at a time:
WAITING -> CAPTAIN_INTRO -> SHUFFLE -> AUCTION -> FINISHED.

Only the host may move a room along. An unmet precondition (a captain still
offline, the shuffle not finished, members left to auction) is not an error:
the transition is skipped and the caller gets the reason back.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .draft_event import Phase, PHASE_ORDER, Participant, Role, Room
from .exceptions import AuthorizationError, InvalidPhaseError

logger = logging.getLogger(__name__)

# Precondition reason codes
REASON_CAPTAINS_OFFLINE = 'captains_offline'
REASON_INTRO_INCOMPLETE = 'captain_intro_incomplete'
REASON_SHUFFLE_INCOMPLETE = 'shuffle_incomplete'
REASON_AUCTION_INCOMPLETE = 'auction_incomplete'


@dataclass(frozen=True)
class PhaseOutcome:
    """Result of a transition request."""
    advanced: bool
    phase: Phase
    previous_phase: Phase
    reason: Optional[str] = None
    detail: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'advanced': self.advanced,
            'phase': self.phase.value,
            'previous_phase': self.previous_phase.value,
            'reason': self.reason,
            'detail': self.detail
        }


def require_host(actor: Participant, action: str) -> None:
    """
    Raises:
        AuthorizationError: If the actor is not the host
    """
    if actor.role != Role.HOST:
        raise AuthorizationError(
            f"{actor.nickname} ({actor.role.value}) may not {action}; host only"
        )


class PhaseStateMachine:
    """Owns the room's phase and the captain introduction cursor."""

    def __init__(
        self,
        room: Room,
        is_online: Callable[[str], bool],
        shuffle_complete: Callable[[], bool],
        auction_drained: Callable[[], bool]
    ):
        """
        Initialize the state machine.

        Args:
            room: Room whose phase is managed
            is_online: Presence lookup by participant id
            shuffle_complete: True once the shuffle controller is COMPLETE
            auction_drained: True once no member is active, pending or unsold
        """
        self.room = room
        self._is_online = is_online
        self._shuffle_complete = shuffle_complete
        self._auction_drained = auction_drained
        self.captain_index = 0

    @property
    def phase(self) -> Phase:
        return self.room.phase

    def require_phase(self, *phases: Phase) -> None:
        """
        Raises:
            InvalidPhaseError: If the room is in none of the given phases
        """
        if self.room.phase not in phases:
            expected = ', '.join(p.value for p in phases)
            raise InvalidPhaseError(
                f"Action requires phase {expected}; room is in {self.room.phase.value}"
            )

    def current_captain(self) -> Optional[Participant]:
        """Captain being introduced, or None outside CAPTAIN_INTRO."""
        if self.room.phase != Phase.CAPTAIN_INTRO:
            return None
        captains = self.room.captains()
        if not captains:
            return None
        return captains[min(self.captain_index, len(captains) - 1)]

    def advance(self, actor: Participant) -> PhaseOutcome:
        """
        Move to the next phase if its precondition holds.

        Args:
            actor: Participant requesting the transition

        Returns:
            PhaseOutcome describing what happened

        Raises:
            AuthorizationError: If the actor is not the host
            InvalidPhaseError: If the room is already FINISHED
        """
        require_host(actor, 'advance the phase')

        current = self.room.phase
        if current == Phase.FINISHED:
            raise InvalidPhaseError("Draft is already finished")

        reason, detail = self._check_precondition(current)
        if reason:
            logger.warning(f"Room {self.room.room_id}: stay in {current.value} ({reason}: {detail})")
            return PhaseOutcome(
                advanced=False,
                phase=current,
                previous_phase=current,
                reason=reason,
                detail=detail
            )

        return self._transition(current)

    def next_captain(self, actor: Participant) -> PhaseOutcome:
        """
        Introduce the next captain, or leave CAPTAIN_INTRO after the last one.

        Raises:
            AuthorizationError: If the actor is not the host
            InvalidPhaseError: Outside CAPTAIN_INTRO
        """
        require_host(actor, 'advance the captain introduction')
        self.require_phase(Phase.CAPTAIN_INTRO)

        if self.captain_index < len(self.room.captains()) - 1:
            self.captain_index += 1
            logger.info(
                f"Room {self.room.room_id}: introducing captain "
                f"{self.captain_index + 1}/{len(self.room.captains())}"
            )
            return PhaseOutcome(
                advanced=False,
                phase=Phase.CAPTAIN_INTRO,
                previous_phase=Phase.CAPTAIN_INTRO
            )

        return self._transition(Phase.CAPTAIN_INTRO)

    def reset(self) -> None:
        """Return to WAITING. Caller is responsible for authorization."""
        self.room.phase = Phase.WAITING
        self.captain_index = 0

    def _check_precondition(self, current: Phase):
        if current == Phase.WAITING:
            offline = [c.nickname for c in self.room.captains() if not self._is_online(c.participant_id)]
            missing_captains = self.room.team_count - len(self.room.captains())
            if offline or missing_captains > 0:
                detail = ', '.join(offline) if offline else f"{missing_captains} team(s) without captain"
                return REASON_CAPTAINS_OFFLINE, detail

        elif current == Phase.CAPTAIN_INTRO:
            total = len(self.room.captains())
            if self.captain_index < total - 1:
                return REASON_INTRO_INCOMPLETE, f"{self.captain_index + 1}/{total} introduced"

        elif current == Phase.SHUFFLE:
            if not self._shuffle_complete():
                return REASON_SHUFFLE_INCOMPLETE, "member order not fully revealed"

        elif current == Phase.AUCTION:
            if not self._auction_drained():
                return REASON_AUCTION_INCOMPLETE, "members remain to be resolved"

        return None, None

    def _transition(self, current: Phase) -> PhaseOutcome:
        target = PHASE_ORDER[PHASE_ORDER.index(current) + 1]
        self.room.phase = target
        if target == Phase.CAPTAIN_INTRO:
            self.captain_index = 0

        logger.info(f"Room {self.room.room_id}: {current.value} -> {target.value}")

        return PhaseOutcome(advanced=True, phase=target, previous_phase=current)
