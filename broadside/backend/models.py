"""Domain records for relay sessions and channel membership."""

from __future__ import annotations

from dataclasses import dataclass


PLAYER = "player"
OBSERVER = "observer"


@dataclass(frozen=True)
class CreatedSession:
    session_id: str
    host_identity: str
    host_token: str


@dataclass(frozen=True)
class IssuedToken:
    session_id: str
    identity: str
    access: str
    token: str


@dataclass(frozen=True)
class ChannelAccess:
    session_id: str
    identity: str
    access: str
