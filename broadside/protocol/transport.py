"""Best-effort datagram transports the channel router runs on."""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Callable, Protocol
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .errors import NotJoined, TransportClosed

logger = logging.getLogger(__name__)

DatagramCallback = Callable[[str, str], None]
PresenceCallback = Callable[[str, str], None]
DeliveryFilter = Callable[[str, str, str, str], bool]

# Presence event reported to a member whose own connection to a channel went away.
DISCONNECTED = "disconnected"


class ChannelRole(str, Enum):
    PUBLISHER = "publisher"
    AUDIENCE = "audience"
    RECEIVE_ONLY = "receive_only"


class Transport(Protocol):
    async def join(
        self,
        channel_id: str,
        identity: str,
        role: ChannelRole,
        on_datagram: DatagramCallback,
        on_presence: PresenceCallback,
    ) -> None:
        """Attach to a channel; callbacks receive (sender, payload) and (identity, event)."""

    async def leave(self, channel_id: str) -> None:
        """Detach from a channel and stop delivering its datagrams."""

    async def publish(self, channel_id: str, payload: str) -> None:
        """Hand one datagram to the transport; delivery is not guaranteed."""


class LocalHub:
    """In-process pub/sub used for tests and single-process matches.

    ``deliver`` may be set to drop datagrams: it receives
    (channel_id, sender, recipient, payload) and returns False to lose it.
    """

    def __init__(self, deliver: DeliveryFilter | None = None) -> None:
        self.deliver = deliver
        self._members: dict[str, dict[str, tuple[DatagramCallback, PresenceCallback]]] = {}
        self.sent: list[tuple[str, str, str]] = []

    def members(self, channel_id: str) -> list[str]:
        return list(self._members.get(channel_id, {}))

    def attach(
        self, channel_id: str, identity: str, on_datagram: DatagramCallback, on_presence: PresenceCallback
    ) -> None:
        members = self._members.setdefault(channel_id, {})
        for other, (_, presence) in members.items():
            if other != identity:
                presence(identity, "joined")
        members[identity] = (on_datagram, on_presence)

    def detach(self, channel_id: str, identity: str) -> None:
        members = self._members.get(channel_id)
        if not members or members.pop(identity, None) is None:
            return
        for _, presence in members.values():
            presence(identity, "left")
        if not members:
            self._members.pop(channel_id, None)

    def drop(self, channel_id: str, identity: str) -> None:
        """Cut one member off as a failing network would; it is told ``disconnected``."""
        member = self._members.get(channel_id, {}).get(identity)
        if member is None:
            return
        self.detach(channel_id, identity)
        member[1](identity, DISCONNECTED)

    def publish(self, channel_id: str, sender: str, payload: str) -> None:
        self.sent.append((channel_id, sender, payload))
        for recipient, (on_datagram, _) in list(self._members.get(channel_id, {}).items()):
            if recipient == sender:
                continue
            if self.deliver is not None and not self.deliver(channel_id, sender, recipient, payload):
                logger.debug("Lost datagram on %s from %s to %s", channel_id, sender, recipient)
                continue
            on_datagram(sender, payload)


class LocalTransport:
    def __init__(self, hub: LocalHub) -> None:
        self.hub = hub
        self._identities: dict[str, str] = {}

    async def join(
        self,
        channel_id: str,
        identity: str,
        role: ChannelRole,
        on_datagram: DatagramCallback,
        on_presence: PresenceCallback,
    ) -> None:
        self.hub.attach(channel_id, identity, on_datagram, on_presence)
        self._identities[channel_id] = identity

    async def leave(self, channel_id: str) -> None:
        identity = self._identities.pop(channel_id, None)
        if identity is not None:
            self.hub.detach(channel_id, identity)

    async def publish(self, channel_id: str, payload: str) -> None:
        identity = self._identities.get(channel_id)
        if identity is None:
            raise NotJoined(channel_id)
        self.hub.publish(channel_id, identity, payload)


class RelayTransport:
    """Websocket client for the relay in ``broadside.backend.api``.

    One connection per channel. When the relay side goes away the channel's
    presence callback gets ``(identity, DISCONNECTED)`` and later publishes
    raise ``TransportClosed`` until the channel is joined again.
    """

    def __init__(self, relay_url: str, token: str) -> None:
        self.relay_url = relay_url.rstrip("/")
        self.token = token
        self._connections: dict[str, object] = {}
        self._readers: dict[str, asyncio.Task[None]] = {}
        self._dropped: set[str] = set()

    def channel_url(self, channel_id: str, identity: str, role: ChannelRole) -> str:
        query = urlencode({"identity": identity, "token": self.token, "role": role.value})
        return f"{self.relay_url}/ws/channels/{channel_id}?{query}"

    async def join(
        self,
        channel_id: str,
        identity: str,
        role: ChannelRole,
        on_datagram: DatagramCallback,
        on_presence: PresenceCallback,
    ) -> None:
        try:
            websocket = await websockets.connect(self.channel_url(channel_id, identity, role))
        except (OSError, WebSocketException) as exc:
            raise TransportClosed(f"could not join {channel_id}: {exc}") from exc
        self._dropped.discard(channel_id)
        self._connections[channel_id] = websocket
        self._readers[channel_id] = asyncio.create_task(
            self._read_loop(channel_id, identity, websocket, on_datagram, on_presence)
        )

    async def _read_loop(
        self,
        channel_id: str,
        identity: str,
        websocket,
        on_datagram: DatagramCallback,
        on_presence: PresenceCallback,
    ) -> None:
        try:
            async for frame in websocket:
                try:
                    message = json.loads(frame)
                except ValueError:
                    logger.warning("Dropping non-JSON relay frame on %s", channel_id)
                    continue
                if not isinstance(message, dict):
                    continue
                kind = message.get("type")
                if kind == "message":
                    on_datagram(str(message.get("from", "")), str(message.get("payload", "")))
                elif kind == "presence":
                    on_presence(str(message.get("identity", "")), str(message.get("event", "")))
        except ConnectionClosed:
            pass
        # A connection still registered here was not closed by leave().
        if self._connections.get(channel_id) is websocket:
            del self._connections[channel_id]
            self._readers.pop(channel_id, None)
            self._dropped.add(channel_id)
            logger.warning("Relay closed channel %s", channel_id)
            on_presence(identity, DISCONNECTED)

    async def leave(self, channel_id: str) -> None:
        self._dropped.discard(channel_id)
        websocket = self._connections.pop(channel_id, None)
        reader = self._readers.pop(channel_id, None)
        if websocket is not None:
            await websocket.close()
        if reader is not None:
            reader.cancel()

    async def publish(self, channel_id: str, payload: str) -> None:
        websocket = self._connections.get(channel_id)
        if websocket is None:
            if channel_id in self._dropped:
                raise TransportClosed(f"relay connection for {channel_id} closed")
            raise NotJoined(channel_id)
        try:
            await websocket.send(json.dumps({"payload": payload}))
        except ConnectionClosed as exc:
            raise TransportClosed(f"relay connection for {channel_id} closed") from exc
