"""
Member order shuffle and reveal.

The order is computed once per run from a seed; reveal then walks the
result one member at a time. Any client that knows the seed and the current
reveal count can redraw the same card layout on its own.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..randomization import card_positions, generate_seed, seeded_shuffle
from .exceptions import InvalidPhaseError

logger = logging.getLogger(__name__)


class ShuffleState(str, Enum):
    GATHER = 'GATHER'
    SHUFFLING = 'SHUFFLING'
    REVEALING = 'REVEALING'
    COMPLETE = 'COMPLETE'


class ShuffleController:
    """Computes the auction order and drives its reveal."""

    def __init__(self):
        self.state = ShuffleState.GATHER
        self.seed: Optional[int] = None
        self.order: List[str] = []
        self.revealed_count = 0

    @property
    def total(self) -> int:
        return len(self.order)

    @property
    def is_complete(self) -> bool:
        return self.state == ShuffleState.COMPLETE

    def start(self, member_ids: Sequence[str], seed: Optional[int] = None) -> List[str]:
        """
        Shuffle the members once.

        Args:
            member_ids: Members to order
            seed: Seed to use (a fresh one is drawn if None)

        Returns:
            Shuffled member ids

        Raises:
            InvalidPhaseError: If a shuffle already ran
        """
        if self.state != ShuffleState.GATHER:
            raise InvalidPhaseError(f"Shuffle already started (state {self.state.value})")

        self.seed = seed if seed is not None else generate_seed()
        self.order = seeded_shuffle(member_ids, self.seed)
        self.revealed_count = 0

        if not self.order:
            self.state = ShuffleState.COMPLETE
            logger.info("Shuffle started with no members; complete immediately")
        else:
            self.state = ShuffleState.SHUFFLING
            logger.info(f"Shuffled {len(self.order)} members (seed={self.seed})")

        return list(self.order)

    def reveal_next(self) -> str:
        """
        Reveal the next member in order.

        Returns:
            Member id just revealed

        Raises:
            InvalidPhaseError: Before start or after completion
        """
        if self.state not in (ShuffleState.SHUFFLING, ShuffleState.REVEALING):
            raise InvalidPhaseError(f"Nothing to reveal in state {self.state.value}")

        member_id = self.order[self.revealed_count]
        self.revealed_count += 1

        if self.revealed_count >= self.total:
            self.state = ShuffleState.COMPLETE
            logger.info(f"Shuffle complete: {self.total} members revealed")
        else:
            self.state = ShuffleState.REVEALING

        logger.debug(f"Revealed #{self.revealed_count}: {member_id}")
        return member_id

    def auction_orders(self) -> Dict[str, int]:
        """1-based auction position per member."""
        return {member_id: i for i, member_id in enumerate(self.order, 1)}

    def revealed(self) -> List[str]:
        return self.order[:self.revealed_count]

    def presentation(self) -> Dict[str, Dict[str, float]]:
        """Card layout for the hidden members at the current reveal count."""
        if self.seed is None:
            return {}
        return card_positions(self.seed, self.revealed_count, self.order)

    def reset(self) -> None:
        self.state = ShuffleState.GATHER
        self.seed = None
        self.order = []
        self.revealed_count = 0

    def to_dict(self) -> dict:
        return {
            'state': self.state.value,
            'seed': self.seed,
            'order': list(self.order),
            'revealed_count': self.revealed_count
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ShuffleController':
        controller = cls()
        controller.state = ShuffleState(data.get('state', ShuffleState.GATHER.value))
        controller.seed = data.get('seed')
        controller.order = list(data.get('order', []))
        controller.revealed_count = data.get('revealed_count', 0)
        return controller
