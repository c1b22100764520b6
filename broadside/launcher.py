"""Command line launcher: run the relay and hand out session credentials."""

from __future__ import annotations

import argparse
import json
import logging
import subprocess
import sys
import time
from typing import Any
from urllib.parse import urlsplit

import httpx

from broadside.config import configure_logging, load_settings

logger = logging.getLogger(__name__)

RELAY_APP = "broadside.backend.api:app"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    settings = load_settings()
    default_server = f"http://{settings.host}:{settings.port}"
    parser = argparse.ArgumentParser(description="Broadside relay launcher")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_p = subparsers.add_parser("serve", help="Run the relay in the foreground")
    serve_p.add_argument("--host", default=settings.host)
    serve_p.add_argument("--port", type=int, default=settings.port)

    host_p = subparsers.add_parser("host", help="Create a session and print the host credentials")
    host_p.add_argument("--identity", required=True)
    host_p.add_argument("--server", default=default_server)
    host_p.add_argument("--start-server", action="store_true")

    join_p = subparsers.add_parser("join", help="Request a join token for a player or observer")
    join_p.add_argument("--session-id", required=True)
    join_p.add_argument("--identity", required=True)
    join_p.add_argument("--observer", action="store_true")
    join_p.add_argument("--server", default=default_server)
    return parser.parse_args(argv)


def relay_is_healthy(server_url: str, timeout_s: float = 8.0, poll_s: float = 0.2) -> bool:
    """Poll the relay's ``/health`` route until it answers 200 or the deadline passes."""
    deadline = time.monotonic() + timeout_s
    with httpx.Client(base_url=server_url, timeout=0.5) as client:
        while time.monotonic() < deadline:
            try:
                if client.get("/health").status_code == 200:
                    return True
            except httpx.TransportError:
                pass
            time.sleep(poll_s)
    return False


def relay_command(server_url: str) -> list[str]:
    parts = urlsplit(server_url)
    return [
        sys.executable,
        "-m",
        "uvicorn",
        RELAY_APP,
        "--host",
        parts.hostname or "127.0.0.1",
        "--port",
        str(parts.port or 8000),
    ]


def spawn_relay(server_url: str) -> subprocess.Popen[str] | None:
    relay = subprocess.Popen(relay_command(server_url))
    if relay_is_healthy(server_url):
        return relay
    logger.error("Relay at %s did not become healthy", server_url)
    relay.terminate()
    return None


def request_credentials(server_url: str, path: str, body: dict[str, Any]) -> dict[str, Any]:
    response = httpx.post(f"{server_url}{path}", json=body, timeout=5.0)
    response.raise_for_status()
    return response.json()


def serve(host: str, port: int) -> int:
    import uvicorn

    uvicorn.run(RELAY_APP, host=host, port=port)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(load_settings().log_level)

    if args.command == "serve":
        return serve(args.host, args.port)

    relay: subprocess.Popen[str] | None = None
    if getattr(args, "start_server", False):
        relay = spawn_relay(args.server)
        if relay is None:
            print("Relay could not be started.", file=sys.stderr)
            return 1
    elif not relay_is_healthy(args.server):
        print("Relay not reachable. Use --start-server or run `broadside serve`.", file=sys.stderr)
        return 1

    if args.command == "host":
        path, body = "/api/sessions", {"identity": args.identity}
    else:
        path = f"/api/sessions/{args.session_id}/tokens"
        body = {"identity": args.identity, "access": "observer" if args.observer else "player"}
    try:
        result = request_credentials(args.server, path, body)
    except httpx.HTTPStatusError as exc:
        print(f"Relay refused the request: {exc.response.status_code}", file=sys.stderr)
        if relay is not None:
            relay.terminate()
        return 1
    print(json.dumps(result, indent=2))

    if relay is not None:
        try:
            relay.wait()
        except KeyboardInterrupt:
            relay.terminate()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
