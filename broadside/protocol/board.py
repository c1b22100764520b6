"""Own-board truth and enemy-board mirror with hit/miss/sink/win derivation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

BOARD_SIZE = 10
ROW_LETTERS = "ABCDEFGHIJ"


class CellState(str, Enum):
    EMPTY = "empty"
    HIT = "hit"
    MISS = "miss"


@dataclass(frozen=True)
class ShipKind:
    name: str
    length: int
    count: int


SHIP_CATALOG: tuple[ShipKind, ...] = (
    ShipKind("destroyer", 2, 2),
    ShipKind("submarine", 3, 2),
    ShipKind("cruiser", 3, 2),
    ShipKind("battleship", 4, 2),
    ShipKind("carrier", 5, 2),
)

TOTAL_SHIP_CELLS = sum(kind.length * kind.count for kind in SHIP_CATALOG)

Grid = list[list[str]]
ShipGrid = list[list[str | None]]


class InvalidLayout(ValueError):
    """Raised when a ship layout does not satisfy the fixed catalog."""


def in_bounds(row: int, col: int) -> bool:
    return 0 <= row < BOARD_SIZE and 0 <= col < BOARD_SIZE


def cell_label(row: int, col: int) -> str:
    return f"{ROW_LETTERS[row]}{col + 1}"


def empty_grid() -> Grid:
    return [[CellState.EMPTY.value for _ in range(BOARD_SIZE)] for _ in range(BOARD_SIZE)]


def empty_ships_grid() -> ShipGrid:
    return [[None for _ in range(BOARD_SIZE)] for _ in range(BOARD_SIZE)]


@dataclass(frozen=True)
class ShipPlacement:
    kind: str
    row: int
    col: int
    horizontal: bool
    length: int

    def cells(self) -> tuple[tuple[int, int], ...]:
        return tuple(
            (self.row + (0 if self.horizontal else i), self.col + (i if self.horizontal else 0))
            for i in range(self.length)
        )


@dataclass(frozen=True)
class ShipLayout:
    """A complete, validated set of placements. Immutable once built."""

    placements: tuple[ShipPlacement, ...]

    def __post_init__(self) -> None:
        expected = {kind.name: kind for kind in SHIP_CATALOG}
        counts: dict[str, int] = {}
        occupied: set[tuple[int, int]] = set()
        for placement in self.placements:
            kind = expected.get(placement.kind)
            if kind is None:
                raise InvalidLayout(f"unknown ship kind {placement.kind!r}")
            if placement.length != kind.length:
                raise InvalidLayout(f"{placement.kind} must have length {kind.length}")
            for row, col in placement.cells():
                if not in_bounds(row, col):
                    raise InvalidLayout(f"{placement.kind} leaves the board at {row},{col}")
                if (row, col) in occupied:
                    raise InvalidLayout(f"{placement.kind} overlaps another ship at {cell_label(row, col)}")
                occupied.add((row, col))
            counts[placement.kind] = counts.get(placement.kind, 0) + 1
        for kind in SHIP_CATALOG:
            if counts.get(kind.name, 0) != kind.count:
                raise InvalidLayout(f"expected {kind.count} x {kind.name}, got {counts.get(kind.name, 0)}")

    @classmethod
    def from_tuples(cls, placements: list[tuple[str, int, int, bool]]) -> "ShipLayout":
        lengths = {kind.name: kind.length for kind in SHIP_CATALOG}
        return cls(
            placements=tuple(
                ShipPlacement(kind=name, row=row, col=col, horizontal=horizontal, length=lengths.get(name, 0))
                for name, row, col, horizontal in placements
            )
        )

    def ship_at(self, row: int, col: int) -> ShipPlacement | None:
        for placement in self.placements:
            if (row, col) in placement.cells():
                return placement
        return None

    def ships_grid(self) -> ShipGrid:
        grid = empty_ships_grid()
        for placement in self.placements:
            for row, col in placement.cells():
                grid[row][col] = placement.kind
        return grid


@dataclass(frozen=True)
class AttackOutcome:
    row: int
    col: int
    is_hit: bool
    is_game_over: bool
    sunk: ShipPlacement | None = None


class OwnBoard:
    """Defender-side truth: private ship layout plus incoming-attack outcomes."""

    def __init__(self, layout: ShipLayout) -> None:
        self.layout = layout
        self.grid: Grid = empty_grid()

    def receive_attack(self, row: int, col: int) -> AttackOutcome:
        if not in_bounds(row, col):
            raise ValueError(f"cell {row},{col} is outside the board")
        ship = self.layout.ship_at(row, col)
        if self.grid[row][col] == CellState.EMPTY.value:
            self.grid[row][col] = CellState.HIT.value if ship is not None else CellState.MISS.value
        sunk = None
        if ship is not None and all(self.grid[r][c] == CellState.HIT.value for r, c in ship.cells()):
            sunk = ship
        return AttackOutcome(
            row=row,
            col=col,
            is_hit=ship is not None,
            is_game_over=self.hit_count() == TOTAL_SHIP_CELLS,
            sunk=sunk,
        )

    def hit_count(self) -> int:
        return sum(1 for line in self.grid for cell in line if cell == CellState.HIT.value)

    def board_grid(self) -> Grid:
        return [list(line) for line in self.grid]

    def ships_grid(self) -> ShipGrid:
        return self.layout.ships_grid()


class EnemyBoard:
    """Attacker-side belief about the opponent, written only from received results."""

    def __init__(self) -> None:
        self.grid: Grid = empty_grid()

    def is_attacked(self, row: int, col: int) -> bool:
        return self.grid[row][col] != CellState.EMPTY.value

    def apply_result(self, row: int, col: int, is_hit: bool) -> None:
        self.grid[row][col] = CellState.HIT.value if is_hit else CellState.MISS.value

    def merge_grid(self, grid: Grid) -> None:
        # Known cells are never reverted to empty.
        for row in range(BOARD_SIZE):
            for col in range(BOARD_SIZE):
                if grid[row][col] != CellState.EMPTY.value:
                    self.grid[row][col] = grid[row][col]

    def hit_count(self) -> int:
        return sum(1 for line in self.grid for cell in line if cell == CellState.HIT.value)

    def board_grid(self) -> Grid:
        return [list(line) for line in self.grid]
