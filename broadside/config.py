"""Configuration helpers for relay and peer runtime."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class Settings:
    server_salt: str
    host: str
    port: int
    relay_url: str
    agent_service_url: str | None
    agent_api_key: str | None
    chunk_ttl_seconds: float
    max_payload_bytes: int
    max_messages_per_second: int
    log_level: str


def load_settings() -> Settings:
    port_raw = os.getenv("BROADSIDE_PORT", "8000")
    host = os.getenv("BROADSIDE_HOST", "127.0.0.1")
    return Settings(
        server_salt=os.getenv("BROADSIDE_SERVER_SALT", "dev-salt"),
        host=host,
        port=int(port_raw),
        relay_url=os.getenv("BROADSIDE_RELAY_URL", f"ws://{host}:{port_raw}"),
        agent_service_url=os.getenv("BROADSIDE_AGENT_SERVICE_URL"),
        agent_api_key=os.getenv("BROADSIDE_AGENT_API_KEY"),
        chunk_ttl_seconds=float(os.getenv("BROADSIDE_CHUNK_TTL_SECONDS", "30")),
        max_payload_bytes=int(os.getenv("BROADSIDE_MAX_PAYLOAD_BYTES", str(30 * 1024))),
        max_messages_per_second=int(os.getenv("BROADSIDE_MAX_MESSAGES_PER_SECOND", "30")),
        log_level=os.getenv("BROADSIDE_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
