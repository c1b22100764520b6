"""Channel router: three logical channels per session over one transport."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from .codec import MAX_PAYLOAD_BYTES, decode_envelope, encode_envelope
from .errors import HandlerAlreadyRegistered, NotJoined, ReceiveOnly, TransportClosed
from .transcripts import decode_chunk
from .transport import DISCONNECTED, ChannelRole, Transport

logger = logging.getLogger(__name__)

AGENT_A_SUFFIX = "_agenta"
AGENT_B_SUFFIX = "_agentb"
MAX_MESSAGES_PER_SECOND = 30

MessageHandler = Callable[[Any, str], Awaitable[None]]
PresenceListener = Callable[[str, str, str], None]


@dataclass(frozen=True)
class ChannelSet:
    game: str
    agent_a: str
    agent_b: str

    def agent_for(self, is_player_a: bool) -> str:
        return self.agent_a if is_player_a else self.agent_b

    def __iter__(self):
        return iter((self.game, self.agent_a, self.agent_b))


def channel_names(base: str) -> ChannelSet:
    return ChannelSet(game=base, agent_a=f"{base}{AGENT_A_SUFFIX}", agent_b=f"{base}{AGENT_B_SUFFIX}")


def session_of(channel_id: str) -> str:
    for suffix in (AGENT_A_SUFFIX, AGENT_B_SUFFIX):
        if channel_id.endswith(suffix):
            return channel_id[: -len(suffix)]
    return channel_id


@dataclass
class _JoinedChannel:
    identity: str
    role: ChannelRole


class ChannelRouter:
    """Demultiplexes inbound datagrams by channel and decodes their framing.

    The game channel carries JSON envelopes, the two agent channels carry
    transcript chunks. Decoded messages are queued and dispatched one at a
    time, so no two handlers ever run concurrently.
    """

    def __init__(
        self,
        transport: Transport,
        channels: ChannelSet,
        max_payload_bytes: int = MAX_PAYLOAD_BYTES,
        max_messages_per_second: int = MAX_MESSAGES_PER_SECOND,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.channels = channels
        self.max_payload_bytes = max_payload_bytes
        self.max_messages_per_second = max_messages_per_second
        self._clock = clock
        self._sleep = sleep
        self._pace_lock = asyncio.Lock()
        self._joined: dict[str, _JoinedChannel] = {}
        self._dropped: dict[str, _JoinedChannel] = {}
        self._handlers: dict[str, MessageHandler] = {}
        self._presence_listener: PresenceListener | None = None
        self._inbox: asyncio.Queue[tuple[str, Any, str]] | None = None
        self._dispatcher: asyncio.Task[None] | None = None
        self._sent_at: deque[float] = deque()

    def is_joined(self, channel_id: str) -> bool:
        return channel_id in self._joined

    def is_disconnected(self, channel_id: str) -> bool:
        return channel_id in self._dropped

    @property
    def disconnected(self) -> list[str]:
        return list(self._dropped)

    def on_message(self, channel_id: str, handler: MessageHandler) -> None:
        if channel_id not in set(self.channels):
            raise ValueError(f"{channel_id!r} is not one of this session's channels")
        if channel_id in self._handlers:
            raise HandlerAlreadyRegistered(channel_id)
        self._handlers[channel_id] = handler

    def on_presence(self, listener: PresenceListener) -> None:
        self._presence_listener = listener

    async def join(self, channel_id: str, identity: str, role: ChannelRole) -> None:
        if channel_id not in set(self.channels):
            raise ValueError(f"{channel_id!r} is not one of this session's channels")
        self._ensure_dispatcher()
        await self.transport.join(
            channel_id,
            identity,
            role,
            lambda sender, payload: self._receive(channel_id, sender, payload),
            lambda member, event: self._presence(channel_id, member, event),
        )
        self._joined[channel_id] = _JoinedChannel(identity=identity, role=role)
        self._dropped.pop(channel_id, None)
        logger.info("Joined %s as %s (%s)", channel_id, identity, role.value)

    async def rejoin(self) -> list[str]:
        """Join every channel the transport dropped again, with its original identity and role."""
        rejoined = []
        for channel_id, joined in list(self._dropped.items()):
            await self.join(channel_id, joined.identity, joined.role)
            rejoined.append(channel_id)
        return rejoined

    async def leave(self, channel_id: str) -> None:
        joined = self._joined.pop(channel_id, None)
        dropped = self._dropped.pop(channel_id, None)
        if joined is None and dropped is None:
            return
        self._handlers.pop(channel_id, None)
        if joined is not None:
            await self.transport.leave(channel_id)
        logger.info("Left %s", channel_id)

    async def leave_all(self) -> None:
        for channel_id in [*self._joined, *self._dropped]:
            await self.leave(channel_id)
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            self._dispatcher = None
        self._inbox = None

    async def send(self, channel_id: str, envelope) -> None:
        joined = self._joined.get(channel_id)
        if joined is None:
            if channel_id in self._dropped:
                raise TransportClosed(f"connection for {channel_id!r} was lost; rejoin before sending")
            raise NotJoined(channel_id)
        if joined.role is ChannelRole.RECEIVE_ONLY:
            raise ReceiveOnly(channel_id)
        payload = encode_envelope(envelope, max_bytes=self.max_payload_bytes)
        await self._pace()
        await self.transport.publish(channel_id, payload)
        logger.debug("Sent %s on %s", envelope.type, channel_id)

    async def drain(self) -> None:
        """Wait until every queued inbound message has been handled."""
        if self._inbox is not None:
            await self._inbox.join()

    def pending(self) -> int:
        return 0 if self._inbox is None else self._inbox.qsize()

    async def _pace(self) -> None:
        # At most max_messages_per_second sends in any one-second window.
        async with self._pace_lock:
            while True:
                now = self._clock()
                while self._sent_at and now - self._sent_at[0] >= 1.0:
                    self._sent_at.popleft()
                if len(self._sent_at) < self.max_messages_per_second:
                    break
                await self._sleep(1.0 - (now - self._sent_at[0]))
            self._sent_at.append(self._clock())

    def _ensure_dispatcher(self) -> None:
        if self._inbox is None:
            self._inbox = asyncio.Queue()
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.create_task(self._dispatch_loop())

    def _receive(self, channel_id: str, sender: str, payload: str) -> None:
        if channel_id not in self._joined or self._inbox is None:
            return
        if channel_id == self.channels.game:
            message = decode_envelope(payload)
        else:
            message = decode_chunk(payload)
        if message is None:
            return
        self._inbox.put_nowait((channel_id, message, sender))

    def _presence(self, channel_id: str, member: str, event: str) -> None:
        joined = self._joined.get(channel_id)
        if event == DISCONNECTED and joined is not None and joined.identity == member:
            self._dropped[channel_id] = self._joined.pop(channel_id)
            logger.warning("Transport dropped %s", channel_id)
        else:
            logger.info("%s %s %s", member, event, channel_id)
        if self._presence_listener is not None:
            self._presence_listener(channel_id, member, event)

    async def _dispatch_loop(self) -> None:
        inbox = self._inbox
        while True:
            channel_id, message, sender = await inbox.get()
            try:
                handler = self._handlers.get(channel_id)
                if handler is None:
                    logger.debug("No handler on %s; dropping message from %s", channel_id, sender)
                    continue
                await handler(message, sender)
            except Exception:
                logger.exception("Handler for %s failed on message from %s", channel_id, sender)
            finally:
                inbox.task_done()
