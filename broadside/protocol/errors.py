"""Error taxonomy for the peer-side protocol."""

from __future__ import annotations


class TransportError(RuntimeError):
    """Raised when a channel operation cannot reach the transport."""


class NotJoined(TransportError):
    def __init__(self, channel_id: str) -> None:
        super().__init__(f"channel {channel_id!r} has not been joined")
        self.channel_id = channel_id


class ReceiveOnly(TransportError):
    def __init__(self, channel_id: str) -> None:
        super().__init__(f"channel {channel_id!r} was joined receive-only")
        self.channel_id = channel_id


class PayloadTooLarge(TransportError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"payload of {size} bytes exceeds the {limit} byte ceiling")
        self.size = size
        self.limit = limit


class TransportClosed(TransportError):
    """The underlying connection went away."""


class HandlerAlreadyRegistered(ValueError):
    def __init__(self, channel_id: str) -> None:
        super().__init__(f"channel {channel_id!r} already has a dispatch handler")
        self.channel_id = channel_id


class SemanticError(ValueError):
    """A local action was rejected before anything was sent."""


class NotYourTurn(SemanticError):
    pass


class CellAlreadyAttacked(SemanticError):
    def __init__(self, row: int, col: int) -> None:
        super().__init__(f"cell {row},{col} has already been attacked")
        self.row = row
        self.col = col


class PlacementIncomplete(SemanticError):
    pass
