"""Join-token helpers for relay channel access."""

from __future__ import annotations

import hashlib
import hmac
import secrets


SESSION_ID_BYTES = 9


def generate_session_id() -> str:
    """Generate a URL-safe base channel name for a new session."""
    return secrets.token_urlsafe(SESSION_ID_BYTES)


def issue_join_token(session_id: str, identity: str, access: str, server_salt: str) -> str:
    """Sign (session, identity, access) with the server salt via HMAC-SHA256."""
    message = f"{session_id}\n{identity}\n{access}".encode("utf-8")
    return hmac.new(server_salt.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_join_token(token: str, session_id: str, identity: str, access: str, server_salt: str) -> bool:
    expected = issue_join_token(session_id, identity, access, server_salt)
    return hmac.compare_digest(expected, token)
