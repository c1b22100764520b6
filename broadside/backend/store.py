"""Session registry for the relay. In-memory only; sessions do not survive restarts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from broadside.backend.models import OBSERVER, PLAYER, ChannelAccess, CreatedSession, IssuedToken
from broadside.backend.security import generate_session_id, issue_join_token, verify_join_token
from broadside.protocol.channels import session_of

MAX_PLAYERS = 2


class SessionStore(Protocol):
    def create_session(self, host_identity: str) -> CreatedSession:
        """Register a new session with its host as the first player."""

    def has_session(self, session_id: str) -> bool:
        """Return whether the session is still open."""

    def issue_token(self, session_id: str, identity: str, access: str) -> IssuedToken | None:
        """Issue a join token, or None when the session is unknown or full."""

    def get_channel_access(self, channel_id: str, identity: str, token: str) -> ChannelAccess | None:
        """Return access for a channel when the token is valid."""

    def close_session(self, session_id: str) -> bool:
        """Forget a session; returns False when it was already gone."""


@dataclass
class InMemorySessionStore:
    server_salt: str

    def __post_init__(self) -> None:
        self._sessions: dict[str, dict] = {}

    def create_session(self, host_identity: str) -> CreatedSession:
        session_id = generate_session_id()
        while session_id in self._sessions:
            session_id = generate_session_id()
        self._sessions[session_id] = {
            "members": {host_identity: PLAYER},
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        token = issue_join_token(session_id, host_identity, PLAYER, self.server_salt)
        return CreatedSession(session_id=session_id, host_identity=host_identity, host_token=token)

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def issue_token(self, session_id: str, identity: str, access: str) -> IssuedToken | None:
        payload = self._sessions.get(session_id)
        if payload is None or access not in (PLAYER, OBSERVER):
            return None
        members: dict[str, str] = payload["members"]
        current = members.get(identity)
        if current is not None and current != access:
            return None
        if access == PLAYER and current is None:
            players = [name for name, kind in members.items() if kind == PLAYER]
            if len(players) >= MAX_PLAYERS:
                return None
        members[identity] = access
        token = issue_join_token(session_id, identity, access, self.server_salt)
        return IssuedToken(session_id=session_id, identity=identity, access=access, token=token)

    def get_channel_access(self, channel_id: str, identity: str, token: str) -> ChannelAccess | None:
        session_id = session_of(channel_id)
        payload = self._sessions.get(session_id)
        if payload is None:
            return None
        access = payload["members"].get(identity)
        if access is None:
            return None
        if not verify_join_token(token, session_id, identity, access, self.server_salt):
            return None
        return ChannelAccess(session_id=session_id, identity=identity, access=access)

    def close_session(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None


def create_store(server_salt: str) -> SessionStore:
    return InMemorySessionStore(server_salt=server_salt)
