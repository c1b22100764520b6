"""Per-session context object wiring channels, boards, turns and transcripts together."""

from __future__ import annotations

import functools
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

from .agents import AgentProvisioner, AgentRequest, AgentSession, agent_prompt
from .board import EnemyBoard, OwnBoard, ShipLayout, cell_label, empty_grid, empty_ships_grid
from .channels import ChannelRouter, channel_names
from .codec import (
    AttackEnvelope,
    AttackResultEnvelope,
    AudienceJoinedEnvelope,
    BoardStateEnvelope,
    ReadyEnvelope,
    board_state,
)
from .errors import PlacementIncomplete, SemanticError, TransportError
from .spectator import SpectatorMirror
from .transcripts import DEFAULT_ACK_MARKERS, DEFAULT_CHUNK_TTL_SECONDS, ChunkBuffer, parse_command, transcript_text
from .transport import DISCONNECTED, ChannelRole, Transport
from .turns import TurnStateMachine

logger = logging.getLogger(__name__)

AGENT_GREETING = "Fire control online. Name your target."


class SessionRole(str, Enum):
    HOST = "host"
    GUEST = "guest"
    OBSERVER = "observer"


class GameSession:
    """Everything one peer knows about one match.

    Handlers only ever touch state owned by this object: the own board is
    written by incoming attacks, the enemy mirror by incoming results and the
    spectator mirror by snapshots. Every observable step is appended to
    ``events`` and passed to ``notify`` for rendering.
    """

    def __init__(
        self,
        base_channel: str,
        identity: str,
        role: SessionRole,
        transport: Transport,
        notify: Callable[[dict[str, Any]], None] | None = None,
        chunk_ttl_seconds: float = DEFAULT_CHUNK_TTL_SECONDS,
        ack_markers: tuple[str, ...] = DEFAULT_ACK_MARKERS,
        **router_options: Any,
    ) -> None:
        self.identity = identity
        self.role = role
        self.channels = channel_names(base_channel)
        self.router = ChannelRouter(transport, self.channels, **router_options)
        self.notify = notify
        self.ack_markers = ack_markers
        self.turns = TurnStateMachine(is_initiator=role is SessionRole.HOST)
        self.own_board: OwnBoard | None = None
        self.enemy_board = EnemyBoard()
        self.mirror = SpectatorMirror()
        self.chunk_buffers = {
            channel_id: ChunkBuffer(ttl_seconds=chunk_ttl_seconds)
            for channel_id in (self.channels.agent_a, self.channels.agent_b)
        }
        self.agent_session: AgentSession | None = None
        self.events: list[dict[str, Any]] = []
        self.audience_seen = False
        self._game_handlers: dict[str, Callable[[Any, str], Awaitable[None]]] = {
            "attack": self._on_attack,
            "attack_result": self._on_attack_result,
            "ready": self._on_ready,
            "audience-joined": self._on_audience_joined,
            "board-state": self._on_board_state,
        }

    @property
    def is_player(self) -> bool:
        return self.role is not SessionRole.OBSERVER

    @property
    def is_player_a(self) -> bool:
        return self.role is SessionRole.HOST

    @property
    def own_agent_channel(self) -> str | None:
        if not self.is_player:
            return None
        return self.channels.agent_for(self.is_player_a)

    @property
    def peer_agent_channel(self) -> str | None:
        if not self.is_player:
            return None
        return self.channels.agent_for(not self.is_player_a)

    async def start(self) -> None:
        self.router.on_message(self.channels.game, self._on_game_message)
        for channel_id in (self.channels.agent_a, self.channels.agent_b):
            self.router.on_message(channel_id, functools.partial(self._on_agent_message, channel_id))
        self.router.on_presence(self._on_presence)

        if self.is_player:
            await self.router.join(self.channels.game, self.identity, ChannelRole.PUBLISHER)
            await self.router.join(self.own_agent_channel, self.identity, ChannelRole.PUBLISHER)
            await self.router.join(self.peer_agent_channel, self.identity, ChannelRole.RECEIVE_ONLY)
        else:
            await self.router.join(self.channels.game, self.identity, ChannelRole.AUDIENCE)
            await self.router.join(self.channels.agent_a, self.identity, ChannelRole.RECEIVE_ONLY)
            await self.router.join(self.channels.agent_b, self.identity, ChannelRole.RECEIVE_ONLY)
            await self.resync()
        self._record("joined", role=self.role.value, channels=list(self.channels))

    async def place_ships(self, layout: ShipLayout) -> None:
        """Lock in the layout and announce readiness to the opponent."""
        if not self.is_player:
            raise SemanticError("observers do not place ships")
        if self.own_board is not None:
            raise SemanticError("ships are already placed")
        self.own_board = OwnBoard(layout)
        phase = self.turns.mark_local_ready()
        try:
            await self.router.send(self.channels.game, ReadyEnvelope())
        except TransportError:
            self.own_board = None
            self.turns.cancel_ready()
            raise
        self._record("ready", phase=phase.value)
        if self.audience_seen:
            # Observers that joined during placement only hold an empty snapshot.
            await self._send_snapshot()
            self._record("snapshot_sent", requestedBy=None)

    async def attack(self, row: int, col: int) -> None:
        if not self.is_player:
            raise SemanticError("observers cannot attack")
        if self.own_board is None:
            raise PlacementIncomplete("place all ships before attacking")
        self.turns.begin_attack(row, col, self.enemy_board)
        try:
            await self.router.send(self.channels.game, AttackEnvelope(row=row, col=col))
        except TransportError:
            self.turns.cancel_attack()
            raise
        self._record("attack_sent", row=row, col=col, cell=cell_label(row, col))

    async def resync(self) -> None:
        """Ask both players for full board snapshots, e.g. after a reconnect."""
        await self.router.send(self.channels.game, AudienceJoinedEnvelope())

    async def rejoin(self) -> list[str]:
        """Reattach channels the transport dropped and refresh board state."""
        channels = await self.router.rejoin()
        if channels:
            self._record("rejoined", channels=channels)
        if self.channels.game in channels:
            await self.resync()
        return channels

    async def start_agent(self, provisioner: AgentProvisioner) -> AgentSession:
        if not self.is_player:
            raise SemanticError("observers do not get a voice agent")
        self.agent_session = await provisioner.start_agent(
            AgentRequest(
                name=f"{self.channels.game}-{self.identity}",
                channel=self.own_agent_channel,
                agent_identity=f"{self.identity}-agent",
                remote_identity=self.identity,
                prompt=agent_prompt(self.identity),
                greeting=AGENT_GREETING,
            )
        )
        return self.agent_session

    async def leave(self, provisioner: AgentProvisioner | None = None) -> None:
        await self.router.leave_all()
        for buffer in self.chunk_buffers.values():
            buffer.clear()
        if provisioner is not None and self.agent_session is not None:
            await provisioner.stop_agent(self.agent_session)
            self.agent_session = None
        self._record("left")

    def describe(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "role": self.role.value,
            "phase": self.turns.phase.value,
            "isMyTurn": self.turns.is_my_turn,
            "won": self.turns.won,
            "ownBoard": None if self.own_board is None else self.own_board.board_grid(),
            "enemyBoard": self.enemy_board.board_grid(),
        }

    async def _on_game_message(self, envelope: Any, sender: str) -> None:
        handler = self._game_handlers.get(envelope.type)
        if handler is None:
            logger.warning("No handler for %s envelopes", envelope.type)
            return
        await handler(envelope, sender)

    async def _on_attack(self, envelope: AttackEnvelope, sender: str) -> None:
        if not self.is_player:
            self._record("attack_observed", row=envelope.row, col=envelope.col, attacker=sender)
            return
        if self.own_board is None:
            logger.warning("Attack from %s before ships were placed; dropping", sender)
            return
        # The defender answers regardless of its local view of the turn.
        outcome = self.own_board.receive_attack(envelope.row, envelope.col)
        phase = self.turns.attack_received(outcome.is_game_over)
        await self.router.send(
            self.channels.game,
            AttackResultEnvelope(
                row=outcome.row, col=outcome.col, is_hit=outcome.is_hit, is_game_over=outcome.is_game_over
            ),
        )
        self._record(
            "attack_received",
            row=outcome.row,
            col=outcome.col,
            cell=cell_label(outcome.row, outcome.col),
            isHit=outcome.is_hit,
            sunk=None if outcome.sunk is None else outcome.sunk.kind,
            isGameOver=outcome.is_game_over,
            phase=phase.value,
        )

    async def _on_attack_result(self, envelope: AttackResultEnvelope, sender: str) -> None:
        if not self.is_player:
            self.mirror.apply_result(envelope, sender)
            self._record("result_observed", row=envelope.row, col=envelope.col, isHit=envelope.is_hit, defender=sender)
            return
        self.enemy_board.apply_result(envelope.row, envelope.col, envelope.is_hit)
        phase = self.turns.result_received(envelope.is_game_over)
        self._record(
            "attack_result",
            row=envelope.row,
            col=envelope.col,
            isHit=envelope.is_hit,
            isGameOver=envelope.is_game_over,
            phase=phase.value,
        )

    async def _on_ready(self, envelope: ReadyEnvelope, sender: str) -> None:
        if not self.is_player:
            return
        phase = self.turns.mark_remote_ready()
        self._record("opponent_ready", phase=phase.value)

    async def _on_audience_joined(self, envelope: AudienceJoinedEnvelope, sender: str) -> None:
        if not self.is_player:
            return
        self.audience_seen = True
        await self._send_snapshot()
        self._record("snapshot_sent", requestedBy=sender)

    async def _send_snapshot(self) -> None:
        if self.own_board is None:
            board, ships = empty_grid(), empty_ships_grid()
        else:
            board, ships = self.own_board.board_grid(), self.own_board.ships_grid()
        await self.router.send(self.channels.game, board_state(self.is_player_a, board, ships))

    async def _on_board_state(self, envelope: BoardStateEnvelope, sender: str) -> None:
        if not self.is_player:
            self.mirror.apply_snapshot(envelope, sender)
            self._record("snapshot_received", isPlayerA=envelope.is_player_a, sender=sender)
            return
        if envelope.is_player_a == self.is_player_a:
            return
        # Opponent ship positions are never merged.
        self.enemy_board.merge_grid(envelope.board_grid())
        self._record("enemy_board_resynced", sender=sender)

    async def _on_agent_message(self, channel_id: str, chunk: Any, sender: str) -> None:
        payload = self.chunk_buffers[channel_id].feed(chunk)
        if payload is None:
            return
        text = transcript_text(payload)
        self._record("transcript", channel=channel_id, sender=sender, text=text)
        if channel_id != self.own_agent_channel:
            return
        cell = parse_command(text, self.ack_markers)
        if cell is None:
            return
        try:
            await self.attack(*cell)
        except SemanticError as exc:
            self._record("attack_rejected", row=cell[0], col=cell[1], reason=str(exc))

    def _on_presence(self, channel_id: str, member: str, event: str) -> None:
        if event == DISCONNECTED and member == self.identity:
            self._record("disconnected", channel=channel_id)
            return
        self._record("presence", channel=channel_id, member=member, event=event)

    def _record(self, kind: str, **data: Any) -> None:
        event = {"kind": kind, **data}
        self.events.append(event)
        if self.notify is not None:
            self.notify(event)
