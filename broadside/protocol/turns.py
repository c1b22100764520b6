"""Per-peer turn state machine: placement, ready handshake, optimistic turn transfer."""

from __future__ import annotations

import logging
from enum import Enum

from .board import EnemyBoard, in_bounds
from .errors import CellAlreadyAttacked, NotYourTurn, SemanticError

logger = logging.getLogger(__name__)


class TurnPhase(str, Enum):
    PLACEMENT = "placement"
    AWAITING_OPPONENT_READY = "awaiting_opponent_ready"
    MY_TURN = "my_turn"
    OPPONENT_TURN = "opponent_turn"
    GAME_OVER = "game_over"


class TurnStateMachine:
    """Holds this peer's turn token. The token is never shared with the opponent.

    The session-initiating peer always takes the first turn once both sides are
    ready. Turn possession moves to a peer only when it finishes processing an
    incoming attack, and leaves it the moment it sends one.
    """

    def __init__(self, is_initiator: bool) -> None:
        self.is_initiator = is_initiator
        self.phase = TurnPhase.PLACEMENT
        self.local_ready = False
        self.remote_ready = False
        self.won: bool | None = None

    @property
    def is_my_turn(self) -> bool:
        return self.phase is TurnPhase.MY_TURN

    @property
    def is_over(self) -> bool:
        return self.phase is TurnPhase.GAME_OVER

    def mark_local_ready(self) -> TurnPhase:
        if self.local_ready:
            return self.phase
        self.local_ready = True
        if self.phase is TurnPhase.PLACEMENT:
            self.phase = TurnPhase.AWAITING_OPPONENT_READY
        return self._maybe_start()

    def cancel_ready(self) -> TurnPhase:
        """Undo ``mark_local_ready`` when the ready announcement never left this peer."""
        if not self.local_ready or self.is_over:
            return self.phase
        self.local_ready = False
        self.phase = TurnPhase.PLACEMENT
        return self.phase

    def mark_remote_ready(self) -> TurnPhase:
        self.remote_ready = True
        return self._maybe_start()

    def _maybe_start(self) -> TurnPhase:
        if self.phase is TurnPhase.AWAITING_OPPONENT_READY and self.local_ready and self.remote_ready:
            self.phase = TurnPhase.MY_TURN if self.is_initiator else TurnPhase.OPPONENT_TURN
            logger.info("Both sides ready; starting in %s", self.phase.value)
        return self.phase

    def begin_attack(self, row: int, col: int, enemy_board: EnemyBoard) -> None:
        """Validate a local attack and hand the turn over before anything is sent."""
        if not in_bounds(row, col):
            raise SemanticError(f"cell {row},{col} is outside the board")
        if self.phase is not TurnPhase.MY_TURN:
            raise NotYourTurn(f"cannot attack during {self.phase.value}")
        if enemy_board.is_attacked(row, col):
            raise CellAlreadyAttacked(row, col)
        self.phase = TurnPhase.OPPONENT_TURN

    def cancel_attack(self) -> None:
        """Take the turn back when the attack could not be handed to the transport."""
        if self.phase is TurnPhase.OPPONENT_TURN:
            self.phase = TurnPhase.MY_TURN

    def attack_received(self, game_over: bool) -> TurnPhase:
        if self.is_over:
            return self.phase
        if game_over:
            self.phase = TurnPhase.GAME_OVER
            self.won = False
            return self.phase
        if self.phase is TurnPhase.AWAITING_OPPONENT_READY:
            # An attack can only come from a peer that already finished placement.
            self.remote_ready = True
        if self.phase is TurnPhase.PLACEMENT:
            return self.phase
        self.phase = TurnPhase.MY_TURN
        return self.phase

    def result_received(self, is_game_over: bool) -> TurnPhase:
        if is_game_over and not self.is_over:
            self.phase = TurnPhase.GAME_OVER
            self.won = True
        return self.phase
