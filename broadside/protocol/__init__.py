"""Peer-side turn-based game-state synchronization protocol."""

from .agents import AgentProvisioner, AgentProvisioningError, AgentRequest, AgentSession
from .board import SHIP_CATALOG, TOTAL_SHIP_CELLS, CellState, EnemyBoard, OwnBoard, ShipLayout, ShipPlacement
from .channels import ChannelRouter, ChannelSet, channel_names
from .codec import decode_envelope, encode_envelope
from .errors import (
    CellAlreadyAttacked,
    HandlerAlreadyRegistered,
    NotJoined,
    NotYourTurn,
    PayloadTooLarge,
    ReceiveOnly,
    SemanticError,
    TransportError,
)
from .session import GameSession, SessionRole
from .spectator import SpectatorMirror
from .transcripts import ChunkBuffer, decode_chunk, parse_command, parse_coordinate, split_transcript
from .transport import ChannelRole, LocalHub, LocalTransport, RelayTransport, Transport
from .turns import TurnPhase, TurnStateMachine

__all__ = [
    "AgentProvisioner",
    "AgentProvisioningError",
    "AgentRequest",
    "AgentSession",
    "CellAlreadyAttacked",
    "CellState",
    "ChannelRole",
    "ChannelRouter",
    "ChannelSet",
    "channel_names",
    "ChunkBuffer",
    "decode_chunk",
    "decode_envelope",
    "encode_envelope",
    "EnemyBoard",
    "GameSession",
    "HandlerAlreadyRegistered",
    "LocalHub",
    "LocalTransport",
    "NotJoined",
    "NotYourTurn",
    "OwnBoard",
    "parse_command",
    "parse_coordinate",
    "PayloadTooLarge",
    "ReceiveOnly",
    "RelayTransport",
    "SemanticError",
    "SessionRole",
    "SHIP_CATALOG",
    "ShipLayout",
    "ShipPlacement",
    "SpectatorMirror",
    "split_transcript",
    "TOTAL_SHIP_CELLS",
    "Transport",
    "TransportError",
    "TurnPhase",
    "TurnStateMachine",
]
