"""Game envelope models and their flat JSON wire encoding."""

from __future__ import annotations

import logging
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, TypeAdapter, ValidationError

from .board import BOARD_SIZE, Grid, ShipGrid
from .errors import PayloadTooLarge

logger = logging.getLogger(__name__)

MAX_PAYLOAD_BYTES = 30 * 1024

Coordinate = Annotated[StrictInt, Field(ge=0, le=BOARD_SIZE - 1)]
CellValue = Literal["empty", "hit", "miss"]
BoardRow = Annotated[tuple[CellValue, ...], Field(min_length=BOARD_SIZE, max_length=BOARD_SIZE)]
ShipRow = Annotated[tuple[Optional[str], ...], Field(min_length=BOARD_SIZE, max_length=BOARD_SIZE)]


class _Envelope(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class AttackEnvelope(_Envelope):
    type: Literal["attack"] = "attack"
    row: Coordinate
    col: Coordinate


class AttackResultEnvelope(_Envelope):
    type: Literal["attack_result"] = "attack_result"
    row: Coordinate
    col: Coordinate
    is_hit: StrictBool = Field(alias="isHit")
    is_game_over: StrictBool = Field(alias="isGameOver")


class ReadyEnvelope(_Envelope):
    type: Literal["ready"] = "ready"


class AudienceJoinedEnvelope(_Envelope):
    type: Literal["audience-joined"] = "audience-joined"


class BoardStateEnvelope(_Envelope):
    type: Literal["board-state"] = "board-state"
    is_player_a: StrictBool = Field(alias="isPlayerA")
    board: Annotated[tuple[BoardRow, ...], Field(min_length=BOARD_SIZE, max_length=BOARD_SIZE)]
    ships: Annotated[tuple[ShipRow, ...], Field(min_length=BOARD_SIZE, max_length=BOARD_SIZE)]

    def board_grid(self) -> Grid:
        return [list(line) for line in self.board]

    def ships_grid(self) -> ShipGrid:
        return [list(line) for line in self.ships]


Envelope = Annotated[
    Union[AttackEnvelope, AttackResultEnvelope, ReadyEnvelope, AudienceJoinedEnvelope, BoardStateEnvelope],
    Field(discriminator="type"),
]

_ENVELOPE_ADAPTER: TypeAdapter[Envelope] = TypeAdapter(Envelope)


def board_state(is_player_a: bool, board: Grid, ships: ShipGrid) -> BoardStateEnvelope:
    return BoardStateEnvelope(
        is_player_a=is_player_a,
        board=tuple(tuple(line) for line in board),
        ships=tuple(tuple(line) for line in ships),
    )


def encode_envelope(envelope: _Envelope, max_bytes: int = MAX_PAYLOAD_BYTES) -> str:
    """Serialize an envelope to compact JSON, refusing payloads above the transport ceiling."""
    text = envelope.model_dump_json(by_alias=True)
    size = len(text.encode("utf-8"))
    if size > max_bytes:
        raise PayloadTooLarge(size=size, limit=max_bytes)
    return text


def decode_envelope(payload: str | bytes) -> Envelope | None:
    """Parse a game envelope; malformed payloads and unknown tags are logged and dropped."""
    try:
        return _ENVELOPE_ADAPTER.validate_json(payload)
    except ValidationError as exc:
        logger.warning("Dropping undecodable game envelope: %s", exc.errors(include_url=False)[:1])
        return None
