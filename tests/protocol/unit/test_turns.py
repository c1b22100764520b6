import pytest

from broadside.protocol.board import EnemyBoard
from broadside.protocol.errors import CellAlreadyAttacked, NotYourTurn, SemanticError
from broadside.protocol.turns import TurnPhase, TurnStateMachine


def _ready(machine: TurnStateMachine) -> TurnStateMachine:
    machine.mark_local_ready()
    machine.mark_remote_ready()
    return machine


def test_local_ready_moves_to_awaiting_opponent() -> None:
    machine = TurnStateMachine(is_initiator=True)

    assert machine.mark_local_ready() is TurnPhase.AWAITING_OPPONENT_READY


@pytest.mark.parametrize("remote_first", [True, False])
def test_initiator_starts_regardless_of_ready_order(remote_first) -> None:
    host = TurnStateMachine(is_initiator=True)
    guest = TurnStateMachine(is_initiator=False)

    for machine in (host, guest):
        if remote_first:
            machine.mark_remote_ready()
            machine.mark_local_ready()
        else:
            machine.mark_local_ready()
            machine.mark_remote_ready()

    assert host.phase is TurnPhase.MY_TURN
    assert guest.phase is TurnPhase.OPPONENT_TURN


def test_begin_attack_hands_over_turn_immediately() -> None:
    machine = _ready(TurnStateMachine(is_initiator=True))

    machine.begin_attack(2, 5, EnemyBoard())

    assert machine.phase is TurnPhase.OPPONENT_TURN
    assert machine.is_my_turn is False


def test_begin_attack_requires_turn() -> None:
    machine = _ready(TurnStateMachine(is_initiator=False))

    with pytest.raises(NotYourTurn):
        machine.begin_attack(0, 0, EnemyBoard())


def test_begin_attack_rejects_known_cell() -> None:
    machine = _ready(TurnStateMachine(is_initiator=True))
    enemy = EnemyBoard()
    enemy.apply_result(0, 0, False)

    with pytest.raises(CellAlreadyAttacked):
        machine.begin_attack(0, 0, enemy)
    assert machine.phase is TurnPhase.MY_TURN


def test_begin_attack_rejects_off_board_cell() -> None:
    machine = _ready(TurnStateMachine(is_initiator=True))

    with pytest.raises(SemanticError):
        machine.begin_attack(10, 0, EnemyBoard())


def test_cancel_attack_restores_turn() -> None:
    machine = _ready(TurnStateMachine(is_initiator=True))
    machine.begin_attack(1, 1, EnemyBoard())

    machine.cancel_attack()

    assert machine.is_my_turn


def test_attack_received_passes_turn_to_defender() -> None:
    machine = _ready(TurnStateMachine(is_initiator=False))

    assert machine.attack_received(game_over=False) is TurnPhase.MY_TURN


def test_attack_received_while_awaiting_ready_implies_opponent_ready() -> None:
    machine = TurnStateMachine(is_initiator=False)
    machine.mark_local_ready()

    machine.attack_received(game_over=False)

    assert machine.remote_ready is True
    assert machine.phase is TurnPhase.MY_TURN


def test_attack_received_during_placement_keeps_placing() -> None:
    machine = TurnStateMachine(is_initiator=False)

    assert machine.attack_received(game_over=False) is TurnPhase.PLACEMENT


def test_losing_attack_ends_game() -> None:
    machine = _ready(TurnStateMachine(is_initiator=False))

    machine.attack_received(game_over=True)

    assert machine.is_over
    assert machine.won is False
    assert machine.attack_received(game_over=False) is TurnPhase.GAME_OVER


def test_winning_result_ends_game() -> None:
    machine = _ready(TurnStateMachine(is_initiator=True))
    machine.begin_attack(0, 0, EnemyBoard())

    machine.result_received(is_game_over=True)

    assert machine.is_over
    assert machine.won is True


def test_ordinary_result_leaves_turn_with_opponent() -> None:
    machine = _ready(TurnStateMachine(is_initiator=True))
    machine.begin_attack(0, 0, EnemyBoard())

    assert machine.result_received(is_game_over=False) is TurnPhase.OPPONENT_TURN


def test_cancel_ready_returns_to_placement_and_keeps_remote_ready() -> None:
    machine = TurnStateMachine(is_initiator=True)
    machine.mark_remote_ready()
    machine.mark_local_ready()

    phase = machine.cancel_ready()

    assert phase is TurnPhase.PLACEMENT
    assert machine.local_ready is False
    assert machine.remote_ready is True
    assert machine.mark_local_ready() is TurnPhase.MY_TURN
