import pytest

from broadside.protocol.board import (
    TOTAL_SHIP_CELLS,
    CellState,
    EnemyBoard,
    InvalidLayout,
    OwnBoard,
    ShipLayout,
    ShipPlacement,
    cell_label,
)


def test_catalog_totals_thirty_four_ship_cells() -> None:
    assert TOTAL_SHIP_CELLS == 34


def test_layout_rejects_overlap(layout) -> None:
    placements = list(layout.placements)
    placements[1] = ShipPlacement(kind="destroyer", row=0, col=1, horizontal=True, length=2)

    with pytest.raises(InvalidLayout, match="overlaps"):
        ShipLayout(placements=tuple(placements))


def test_layout_rejects_out_of_bounds(layout) -> None:
    placements = list(layout.placements)
    placements[-1] = ShipPlacement(kind="carrier", row=9, col=7, horizontal=True, length=5)

    with pytest.raises(InvalidLayout, match="leaves the board"):
        ShipLayout(placements=tuple(placements))


def test_layout_rejects_missing_ship(layout) -> None:
    with pytest.raises(InvalidLayout, match="carrier"):
        ShipLayout(placements=layout.placements[:-1])


def test_layout_from_tuples_fills_lengths(layout) -> None:
    rebuilt = ShipLayout.from_tuples([(p.kind, p.row, p.col, p.horizontal) for p in layout.placements])

    assert rebuilt == layout


def test_receive_attack_reports_miss_and_hit(layout) -> None:
    board = OwnBoard(layout)

    miss = board.receive_attack(2, 5)
    hit = board.receive_attack(2, 0)

    assert (miss.is_hit, miss.is_game_over) == (False, False)
    assert (hit.is_hit, hit.is_game_over) == (True, False)
    assert board.grid[2][5] == CellState.MISS.value
    assert board.grid[2][0] == CellState.HIT.value


def test_receive_attack_reports_sunk_ship(layout) -> None:
    board = OwnBoard(layout)

    first = board.receive_attack(0, 0)
    second = board.receive_attack(0, 1)

    assert first.sunk is None
    assert second.sunk is not None
    assert second.sunk.kind == "destroyer"


def test_repeated_attack_does_not_double_count(layout) -> None:
    board = OwnBoard(layout)

    board.receive_attack(0, 0)
    again = board.receive_attack(0, 0)

    assert again.is_hit is True
    assert board.hit_count() == 1


def test_game_over_exactly_when_every_ship_cell_is_struck(layout) -> None:
    board = OwnBoard(layout)
    ship_cells = [cell for placement in layout.placements for cell in placement.cells()]

    outcomes = [board.receive_attack(row, col) for row, col in ship_cells]

    assert [outcome.is_game_over for outcome in outcomes[:-1]] == [False] * (len(ship_cells) - 1)
    assert outcomes[-1].is_game_over is True
    assert board.hit_count() == TOTAL_SHIP_CELLS


def test_enemy_board_result_is_idempotent() -> None:
    once = EnemyBoard()
    twice = EnemyBoard()

    once.apply_result(4, 4, True)
    twice.apply_result(4, 4, True)
    twice.apply_result(4, 4, True)

    assert once.grid == twice.grid
    assert twice.is_attacked(4, 4)
    assert not twice.is_attacked(4, 5)


def test_enemy_board_merge_keeps_known_cells() -> None:
    board = EnemyBoard()
    board.apply_result(1, 1, True)
    incoming = EnemyBoard()
    incoming.apply_result(2, 2, False)

    board.merge_grid(incoming.board_grid())

    assert board.grid[1][1] == "hit"
    assert board.grid[2][2] == "miss"


def test_ships_grid_marks_kinds(layout) -> None:
    grid = OwnBoard(layout).ships_grid()

    assert grid[9][4] == "carrier"
    assert grid[9][5] is None


def test_cell_label() -> None:
    assert cell_label(1, 3) == "B4"
    assert cell_label(9, 9) == "J10"
