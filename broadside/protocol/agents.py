"""Client for the voice-agent provisioning service."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class AgentProvisioningError(RuntimeError):
    pass


@dataclass(frozen=True)
class AgentRequest:
    name: str
    channel: str
    agent_identity: str
    remote_identity: str
    prompt: str
    greeting: str


@dataclass(frozen=True)
class AgentSession:
    agent_id: str


class AgentProvisioner:
    """Starts and stops voice agents. The returned id is only used for cleanup."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=DEFAULT_TIMEOUT_SECONDS)

    async def start_agent(self, request: AgentRequest) -> AgentSession:
        try:
            response = await self._client.post("/agents", json=asdict(request))
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise AgentProvisioningError(f"could not start agent {request.name!r}: {exc}") from exc
        agent_id = body.get("agent_id") if isinstance(body, dict) else None
        if not isinstance(agent_id, str) or agent_id == "":
            raise AgentProvisioningError(f"agent service returned no id for {request.name!r}")
        logger.info("Started agent %s on %s", agent_id, request.channel)
        return AgentSession(agent_id=agent_id)

    async def stop_agent(self, session: AgentSession) -> None:
        try:
            response = await self._client.delete(f"/agents/{session.agent_id}")
            if response.status_code != 404:
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise AgentProvisioningError(f"could not stop agent {session.agent_id}: {exc}") from exc
        logger.info("Stopped agent %s", session.agent_id)

    async def aclose(self) -> None:
        await self._client.aclose()


def agent_prompt(player_identity: str, board_size: int = 10) -> str:
    last_row = chr(ord("A") + board_size - 1)
    return (
        f"You are the fire-control officer for {player_identity} in a game of Battleship. "
        f"When the player names a target between A1 and {last_row}{board_size}, repeat it back as "
        f"'Firing at <target>'. Never say 'firing at' for anything else."
    )
