"""Read-only mirror of both players' boards for observers."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .board import CellState, Grid, ShipGrid
from .codec import AttackResultEnvelope, BoardStateEnvelope

logger = logging.getLogger(__name__)


@dataclass
class SideSnapshot:
    sender: str
    board: Grid
    ships: ShipGrid


class SpectatorMirror:
    """Union of the latest ``board-state`` snapshot from each side.

    Snapshots overwrite whatever was there, so repeated broadcasts triggered by
    several observers joining at once are harmless. Results observed after a
    snapshot are applied to the defender's side, identified by the sender.
    """

    def __init__(self) -> None:
        self.sides: dict[bool, SideSnapshot] = {}

    def apply_snapshot(self, envelope: BoardStateEnvelope, sender: str) -> None:
        self.sides[envelope.is_player_a] = SideSnapshot(
            sender=sender,
            board=envelope.board_grid(),
            ships=envelope.ships_grid(),
        )

    def side_of(self, sender: str) -> bool | None:
        for is_player_a, snapshot in self.sides.items():
            if snapshot.sender == sender:
                return is_player_a
        return None

    def apply_result(self, envelope: AttackResultEnvelope, sender: str) -> bool:
        # The defender sends the result, so it is the defender's board that changed.
        side = self.side_of(sender)
        if side is None:
            logger.debug("Result from %s before any snapshot; waiting for board-state", sender)
            return False
        state = CellState.HIT if envelope.is_hit else CellState.MISS
        self.sides[side].board[envelope.row][envelope.col] = state.value
        return True

    def board(self, is_player_a: bool) -> Grid | None:
        snapshot = self.sides.get(is_player_a)
        return None if snapshot is None else [list(line) for line in snapshot.board]

    def ships(self, is_player_a: bool) -> ShipGrid | None:
        snapshot = self.sides.get(is_player_a)
        return None if snapshot is None else [list(line) for line in snapshot.ships]

    @property
    def complete(self) -> bool:
        return True in self.sides and False in self.sides
