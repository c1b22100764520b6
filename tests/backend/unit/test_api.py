import asyncio

import pytest

fastapi = pytest.importorskip("fastapi")
pytest.importorskip("httpx")
from fastapi.testclient import TestClient

from broadside.backend.api import ChannelHub, create_app
from broadside.backend.store import InMemorySessionStore
from broadside.protocol.transport import ChannelRole


def _client() -> TestClient:
    return TestClient(create_app(store=InMemorySessionStore(server_salt="test-salt")))


def _ws_url(channel: str, identity: str, token: str, role: str = "publisher") -> str:
    return f"/ws/channels/{channel}?identity={identity}&token={token}&role={role}"


def test_post_sessions_returns_id_token_and_channels() -> None:
    client = _client()

    response = client.post("/api/sessions", json={"identity": "alice"})

    assert response.status_code == 200
    data = response.json()
    session_id = data["session_id"]
    assert data["identity"] == "alice"
    assert data["token"]
    assert data["channels"] == {
        "game": session_id,
        "agent_a": f"{session_id}_agenta",
        "agent_b": f"{session_id}_agentb",
    }


def test_health() -> None:
    assert _client().get("/health").json() == {"status": "ok"}


def test_tokens_for_unknown_session_return_404() -> None:
    response = _client().post("/api/sessions/nope/tokens", json={"identity": "bob", "access": "player"})

    assert response.status_code == 404


def test_third_player_is_refused_but_observers_are_not() -> None:
    client = _client()
    session_id = client.post("/api/sessions", json={"identity": "alice"}).json()["session_id"]

    guest = client.post(f"/api/sessions/{session_id}/tokens", json={"identity": "bob", "access": "player"})
    third = client.post(f"/api/sessions/{session_id}/tokens", json={"identity": "eve", "access": "player"})
    observer = client.post(f"/api/sessions/{session_id}/tokens", json={"identity": "carol", "access": "observer"})

    assert guest.status_code == 200
    assert third.status_code == 409
    assert observer.status_code == 200
    assert observer.json()["access"] == "observer"


def test_token_request_validates_access_kind() -> None:
    client = _client()
    session_id = client.post("/api/sessions", json={"identity": "alice"}).json()["session_id"]

    response = client.post(f"/api/sessions/{session_id}/tokens", json={"identity": "bob", "access": "referee"})

    assert response.status_code == 422


def test_websocket_relays_datagrams_and_presence() -> None:
    with _client() as client:
        created = client.post("/api/sessions", json={"identity": "alice"}).json()
        session_id = created["session_id"]
        guest = client.post(
            f"/api/sessions/{session_id}/tokens", json={"identity": "bob", "access": "player"}
        ).json()

        with client.websocket_connect(_ws_url(session_id, "alice", created["token"])) as ws_alice:
            with client.websocket_connect(_ws_url(session_id, "bob", guest["token"])) as ws_bob:
                presence = ws_alice.receive_json()
                ws_bob.send_json({"payload": '{"type":"ready"}'})
                message = ws_alice.receive_json()

    assert presence == {"type": "presence", "event": "joined", "identity": "bob"}
    assert message == {"type": "message", "from": "bob", "payload": '{"type":"ready"}'}


def test_websocket_rejects_invalid_token() -> None:
    client = _client()
    session_id = client.post("/api/sessions", json={"identity": "alice"}).json()["session_id"]

    with pytest.raises(Exception):
        with client.websocket_connect(_ws_url(session_id, "alice", "forged")):
            pass


def test_websocket_rejects_observer_as_publisher() -> None:
    client = _client()
    session_id = client.post("/api/sessions", json={"identity": "alice"}).json()["session_id"]
    observer = client.post(
        f"/api/sessions/{session_id}/tokens", json={"identity": "carol", "access": "observer"}
    ).json()

    with pytest.raises(Exception):
        with client.websocket_connect(_ws_url(f"{session_id}_agenta", "carol", observer["token"])):
            pass


class FakeWebSocket:
    def __init__(self) -> None:
        self.frames: list[dict] = []
        self.accepted = False

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, frame: dict) -> None:
        self.frames.append(frame)

    async def close(self, code: int = 1000) -> None:
        return None


def _hub_with_members(max_payload_bytes: int = 1024, max_messages_per_second: int = 30):
    hub = ChannelHub(max_payload_bytes=max_payload_bytes, max_messages_per_second=max_messages_per_second)
    sender = FakeWebSocket()
    listener = FakeWebSocket()
    observer = FakeWebSocket()

    async def connect() -> None:
        await hub.connect("s", "alice", ChannelRole.PUBLISHER, sender)
        await hub.connect("s", "bob", ChannelRole.PUBLISHER, listener)
        await hub.connect("s", "carol", ChannelRole.RECEIVE_ONLY, observer)

    asyncio.run(connect())
    listener.frames.clear()
    sender.frames.clear()
    observer.frames.clear()
    return hub, sender, listener, observer


def test_hub_drops_payloads_over_the_ceiling() -> None:
    hub, _, listener, _ = _hub_with_members(max_payload_bytes=10)

    relayed = asyncio.run(hub.relay("s", "alice", "x" * 11))

    assert relayed is False
    assert listener.frames == []


def test_hub_drops_senders_above_the_rate_ceiling() -> None:
    hub, _, listener, _ = _hub_with_members(max_messages_per_second=2)

    async def burst() -> list[bool]:
        return [await hub.relay("s", "alice", f"m{index}") for index in range(3)]

    assert asyncio.run(burst()) == [True, True, False]
    assert [frame["payload"] for frame in listener.frames] == ["m0", "m1"]


def test_hub_ignores_receive_only_publishers() -> None:
    hub, sender, listener, _ = _hub_with_members()

    relayed = asyncio.run(hub.relay("s", "carol", "hello"))

    assert relayed is False
    assert sender.frames == [] and listener.frames == []


def test_hub_never_echoes_to_sender_and_announces_leave() -> None:
    hub, sender, listener, observer = _hub_with_members()

    asyncio.run(hub.relay("s", "alice", "hello"))
    asyncio.run(hub.disconnect("s", "bob", listener))

    assert sender.frames == [{"type": "presence", "event": "left", "identity": "bob"}]
    assert observer.frames[0] == {"type": "message", "from": "alice", "payload": "hello"}
    assert hub.members("s") == ["alice", "carol"]
