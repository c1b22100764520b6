"""Relay backend standing in for the real-time datagram transport."""

from .models import ChannelAccess, CreatedSession, IssuedToken
from .security import generate_session_id, issue_join_token, verify_join_token
from .store import InMemorySessionStore, SessionStore, create_store

__all__ = [
    "ChannelAccess",
    "create_store",
    "CreatedSession",
    "generate_session_id",
    "InMemorySessionStore",
    "issue_join_token",
    "IssuedToken",
    "SessionStore",
    "verify_join_token",
]
