import asyncio

import pytest

from broadside.protocol.board import SHIP_CATALOG, ShipLayout, ShipPlacement


def row_per_ship_layout() -> ShipLayout:
    """Every ship horizontal at column 0 on its own row; columns 5-9 stay empty."""
    placements = []
    row = 0
    for kind in SHIP_CATALOG:
        for _ in range(kind.count):
            placements.append(ShipPlacement(kind=kind.name, row=row, col=0, horizontal=True, length=kind.length))
            row += 1
    return ShipLayout(placements=tuple(placements))


async def _settle(*sessions) -> None:
    for _ in range(100):
        await asyncio.sleep(0)
        for session in sessions:
            await session.router.drain()
        if all(session.router.pending() == 0 for session in sessions):
            return


@pytest.fixture
def layout() -> ShipLayout:
    return row_per_ship_layout()


@pytest.fixture
def settle():
    """Run every queued handler on the given sessions until nothing is in flight."""
    return _settle
