import json
import sys

import httpx

from broadside import launcher


def test_parse_args_join_defaults_to_local_relay(monkeypatch) -> None:
    monkeypatch.delenv("BROADSIDE_HOST", raising=False)
    monkeypatch.delenv("BROADSIDE_PORT", raising=False)

    args = launcher.parse_args(["join", "--session-id", "abc", "--identity", "carol", "--observer"])

    assert args.command == "join"
    assert args.session_id == "abc"
    assert args.observer is True
    assert args.server == "http://127.0.0.1:8000"


def test_relay_command_targets_the_server_address() -> None:
    command = launcher.relay_command("http://0.0.0.0:9100")

    assert command[0] == sys.executable
    assert command[3] == "broadside.backend.api:app"
    assert command[-4:] == ["--host", "0.0.0.0", "--port", "9100"]


def test_main_join_requests_observer_token(monkeypatch, capsys) -> None:
    calls = []

    def fake_request_credentials(server_url, path, body):
        calls.append((server_url, path, body))
        return {"session_id": "abc", "identity": "carol", "access": "observer", "token": "t"}

    monkeypatch.setattr(launcher, "relay_is_healthy", lambda server_url: True)
    monkeypatch.setattr(launcher, "request_credentials", fake_request_credentials)

    code = launcher.main(["join", "--session-id", "abc", "--identity", "carol", "--observer", "--server", "http://relay"])

    assert code == 0
    assert calls == [("http://relay", "/api/sessions/abc/tokens", {"identity": "carol", "access": "observer"})]
    assert json.loads(capsys.readouterr().out)["access"] == "observer"


def test_main_reports_full_session(monkeypatch, capsys) -> None:
    def refuse(server_url, path, body):
        request = httpx.Request("POST", f"{server_url}{path}")
        raise httpx.HTTPStatusError("full", request=request, response=httpx.Response(409, request=request))

    monkeypatch.setattr(launcher, "relay_is_healthy", lambda server_url: True)
    monkeypatch.setattr(launcher, "request_credentials", refuse)

    code = launcher.main(["join", "--session-id", "abc", "--identity", "eve", "--server", "http://relay"])

    assert code == 1
    assert "409" in capsys.readouterr().err


def test_main_reports_unreachable_relay(monkeypatch, capsys) -> None:
    monkeypatch.setattr(launcher, "relay_is_healthy", lambda server_url: False)

    code = launcher.main(["host", "--identity", "alice", "--server", "http://relay"])

    assert code == 1
    assert "Relay not reachable" in capsys.readouterr().err
