"""FastAPI relay: session creation, join tokens and best-effort channel pub/sub."""

from __future__ import annotations

import json
import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Literal

from fastapi import Depends, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from broadside.backend.models import OBSERVER
from broadside.backend.store import SessionStore, create_store
from broadside.config import load_settings
from broadside.protocol.channels import channel_names, session_of
from broadside.protocol.transport import ChannelRole

logger = logging.getLogger(__name__)


class CreateSessionRequest(BaseModel):
    identity: str = Field(min_length=1, max_length=64)


class SessionChannels(BaseModel):
    game: str
    agent_a: str
    agent_b: str


class CreateSessionResponse(BaseModel):
    session_id: str
    identity: str
    token: str
    channels: SessionChannels


class TokenRequest(BaseModel):
    identity: str = Field(min_length=1, max_length=64)
    access: Literal["player", "observer"]


class TokenResponse(BaseModel):
    session_id: str
    identity: str
    access: str
    token: str


def _channels_for(session_id: str) -> SessionChannels:
    names = channel_names(session_id)
    return SessionChannels(game=names.game, agent_a=names.agent_a, agent_b=names.agent_b)


@dataclass
class _Member:
    websocket: WebSocket
    role: ChannelRole
    sent_at: deque[float] = field(default_factory=deque)


class ChannelHub:
    """Relays datagrams to every other member of a channel.

    Oversized payloads, senders above the rate ceiling and receive-only
    members are dropped silently, the way a lossy transport would.
    """

    def __init__(self, max_payload_bytes: int, max_messages_per_second: int) -> None:
        self.max_payload_bytes = max_payload_bytes
        self.max_messages_per_second = max_messages_per_second
        self._channels: dict[str, dict[str, _Member]] = defaultdict(dict)

    def members(self, channel_id: str) -> list[str]:
        return list(self._channels.get(channel_id, {}))

    async def connect(self, channel_id: str, identity: str, role: ChannelRole, websocket: WebSocket) -> None:
        await websocket.accept()
        previous = self._channels[channel_id].get(identity)
        if previous is not None:
            await previous.websocket.close(code=1000)
        self._channels[channel_id][identity] = _Member(websocket=websocket, role=role)
        await self._broadcast(channel_id, identity, {"type": "presence", "event": "joined", "identity": identity})

    async def disconnect(self, channel_id: str, identity: str, websocket: WebSocket) -> None:
        members = self._channels.get(channel_id)
        if members is None:
            return
        current = members.get(identity)
        if current is None or current.websocket is not websocket:
            return
        members.pop(identity)
        if not members:
            self._channels.pop(channel_id, None)
            return
        await self._broadcast(channel_id, identity, {"type": "presence", "event": "left", "identity": identity})

    def _admit(self, member: _Member, payload: str) -> bool:
        if member.role is ChannelRole.RECEIVE_ONLY:
            return False
        if len(payload.encode("utf-8")) > self.max_payload_bytes:
            return False
        now = time.monotonic()
        while member.sent_at and now - member.sent_at[0] >= 1.0:
            member.sent_at.popleft()
        if len(member.sent_at) >= self.max_messages_per_second:
            return False
        member.sent_at.append(now)
        return True

    async def relay(self, channel_id: str, sender: str, payload: str) -> bool:
        member = self._channels.get(channel_id, {}).get(sender)
        if member is None:
            return False
        if not self._admit(member, payload):
            logger.debug("Dropped datagram from %s on %s", sender, channel_id)
            return False
        await self._broadcast(channel_id, sender, {"type": "message", "from": sender, "payload": payload})
        return True

    async def _broadcast(self, channel_id: str, sender: str, frame: dict[str, Any]) -> None:
        stale: list[tuple[str, WebSocket]] = []
        for identity, member in list(self._channels.get(channel_id, {}).items()):
            if identity == sender:
                continue
            try:
                await member.websocket.send_json(frame)
            except RuntimeError:
                stale.append((identity, member.websocket))
        for identity, websocket in stale:
            await self.disconnect(channel_id, identity, websocket)


def create_app(store: SessionStore | None = None) -> FastAPI:
    settings = load_settings()
    app = FastAPI(title="Broadside Relay", version="0.1.0")
    session_store = store if store is not None else create_store(server_salt=settings.server_salt)
    hub = ChannelHub(
        max_payload_bytes=settings.max_payload_bytes,
        max_messages_per_second=settings.max_messages_per_second,
    )
    app.state.channel_hub = hub

    def get_store() -> SessionStore:
        return session_store

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/sessions", response_model=CreateSessionResponse)
    def create_session(
        payload: CreateSessionRequest,
        local_store: SessionStore = Depends(get_store),
    ) -> CreateSessionResponse:
        created = local_store.create_session(host_identity=payload.identity)
        logger.info("Created session %s for %s", created.session_id, created.host_identity)
        return CreateSessionResponse(
            session_id=created.session_id,
            identity=created.host_identity,
            token=created.host_token,
            channels=_channels_for(created.session_id),
        )

    @app.post("/api/sessions/{session_id}/tokens", response_model=TokenResponse)
    def issue_token(
        session_id: str,
        payload: TokenRequest,
        local_store: SessionStore = Depends(get_store),
    ) -> TokenResponse:
        if not local_store.has_session(session_id):
            raise HTTPException(status_code=404, detail="Session not found")
        issued = local_store.issue_token(session_id=session_id, identity=payload.identity, access=payload.access)
        if issued is None:
            raise HTTPException(status_code=409, detail="Session is full or identity already taken")
        return TokenResponse(
            session_id=issued.session_id,
            identity=issued.identity,
            access=issued.access,
            token=issued.token,
        )

    @app.websocket("/ws/channels/{channel_id}")
    async def channel_ws(
        websocket: WebSocket,
        channel_id: str,
        local_store: SessionStore = Depends(get_store),
    ) -> None:
        identity = websocket.query_params.get("identity") or ""
        token = websocket.query_params.get("token") or ""
        role_raw = websocket.query_params.get("role") or ChannelRole.PUBLISHER.value
        try:
            role = ChannelRole(role_raw)
        except ValueError:
            await websocket.close(code=1008)
            return
        access = local_store.get_channel_access(channel_id=channel_id, identity=identity, token=token)
        if access is None or (access.access == OBSERVER and role is ChannelRole.PUBLISHER):
            await websocket.close(code=1008)
            return

        await hub.connect(channel_id=channel_id, identity=identity, role=role, websocket=websocket)
        try:
            while True:
                frame = await websocket.receive_text()
                try:
                    payload = json.loads(frame).get("payload")
                except (ValueError, AttributeError):
                    continue
                if isinstance(payload, str):
                    await hub.relay(channel_id=channel_id, sender=identity, payload=payload)
        except WebSocketDisconnect:
            await hub.disconnect(channel_id=channel_id, identity=identity, websocket=websocket)
            if session_of(channel_id) == channel_id and not hub.members(channel_id):
                local_store.close_session(access.session_id)
                logger.info("Closed session %s after its game channel emptied", access.session_id)

    return app


app = create_app()
