import json

import pytest

from broadside.protocol.board import empty_grid
from broadside.protocol.codec import (
    AttackEnvelope,
    AttackResultEnvelope,
    AudienceJoinedEnvelope,
    BoardStateEnvelope,
    ReadyEnvelope,
    board_state,
    decode_envelope,
    encode_envelope,
)
from broadside.protocol.errors import PayloadTooLarge


def test_attack_result_uses_flat_camel_case_wire_fields() -> None:
    text = encode_envelope(AttackResultEnvelope(row=2, col=5, is_hit=False, is_game_over=False))

    assert json.loads(text) == {"type": "attack_result", "row": 2, "col": 5, "isHit": False, "isGameOver": False}


def test_tag_only_envelopes() -> None:
    assert json.loads(encode_envelope(ReadyEnvelope())) == {"type": "ready"}
    assert json.loads(encode_envelope(AudienceJoinedEnvelope())) == {"type": "audience-joined"}


def test_decode_attack_from_wire() -> None:
    envelope = decode_envelope('{"type":"attack","row":3,"col":9}')

    assert isinstance(envelope, AttackEnvelope)
    assert (envelope.row, envelope.col) == (3, 9)


def test_decode_board_state_keeps_grids() -> None:
    board = empty_grid()
    board[0][0] = "hit"
    ships = [[None] * 10 for _ in range(10)]
    ships[0][0] = "destroyer"

    envelope = decode_envelope(encode_envelope(board_state(True, board, ships)))

    assert isinstance(envelope, BoardStateEnvelope)
    assert envelope.is_player_a is True
    assert envelope.board_grid() == board
    assert envelope.ships_grid() == ships


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        '{"row": 1, "col": 1}',
        '{"type": "surrender"}',
        '{"type": "attack", "row": 10, "col": 0}',
        '{"type": "attack", "row": "1", "col": 0}',
        '{"type": "attack_result", "row": 1, "col": 1, "isHit": "yes", "isGameOver": false}',
        '{"type": "board-state", "isPlayerA": true, "board": [], "ships": []}',
        b"\xff\xfe",
    ],
)
def test_decode_drops_malformed_envelopes(payload) -> None:
    assert decode_envelope(payload) is None


def test_envelopes_are_immutable() -> None:
    envelope = AttackEnvelope(row=1, col=1)

    with pytest.raises(Exception):
        envelope.row = 2


def test_encode_refuses_oversized_payload() -> None:
    with pytest.raises(PayloadTooLarge):
        encode_envelope(AttackEnvelope(row=1, col=1), max_bytes=10)
