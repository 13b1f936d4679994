"""Pytest configuration and fixtures."""

import asyncio
import contextlib
import json
from collections.abc import Callable
from typing import Any, AsyncGenerator

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from guardrail_mcp.main import create_app
from guardrail_mcp.models.session import AuthorizationContext
from guardrail_mcp.protocol.server import GuardrailServer
from guardrail_mcp.services.moderation import ModerationClient
from guardrail_mcp.transport.manager import SessionManager, get_session_manager

MODERATION_BASE_URL = "https://moderation.test"

AUTH_HEADERS = {"Authorization": "Bearer test-key", "strategykey": "default"}

INITIALIZE = {
    "jsonrpc": "2.0",
    "id": 1,
    "method": "initialize",
    "params": {
        "protocolVersion": "2025-03-26",
        "capabilities": {},
        "clientInfo": {"name": "pytest", "version": "0.1"},
    },
}


class FakeModerationService:
    """In-process stand-in for the remote moderation API.

    Content containing "attack" is blocked, everything else passes. ``mode``
    switches to failure responses; ``gate`` holds requests until it is set.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.mode = "ok"
        self.gate: asyncio.Event | None = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()

        if self.mode == "timeout":
            raise httpx.ReadTimeout("read timed out", request=request)
        if self.mode == "http_error":
            return httpx.Response(503, json={"message": "unavailable"})
        if self.mode == "error_code":
            return httpx.Response(200, json={"code": 401, "message": "invalid api key"})
        if self.mode == "invalid_json":
            return httpx.Response(200, content=b"<html>oops</html>")

        body = json.loads(request.content)
        blocked = "attack" in body["content"]
        return httpx.Response(
            200,
            json={
                "code": 0,
                "message": "success",
                "data": {
                    "suggestion": "block" if blocked else "pass",
                    "score": 0.97 if blocked else 0.02,
                    "label": "violence" if blocked else "",
                    "labelName": "Violence" if blocked else "",
                },
            },
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def parse_sse(text: str) -> list[dict[str, Any]]:
    """Split an SSE body into frames of {"id", "event", "data"}."""
    frames = []
    for block in text.split("\n\n"):
        if not block.strip():
            continue
        frame: dict[str, Any] = {"id": None, "event": "message", "data": ""}
        for line in block.splitlines():
            field, _, value = line.partition(": ")
            if field == "id":
                frame["id"] = int(value)
            elif field == "event":
                frame["event"] = value
            elif field == "data":
                frame["data"] += value
        if frame["event"] == "message":
            frame["data"] = json.loads(frame["data"])
        frames.append(frame)
    return frames


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until ``predicate`` holds, failing the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Timed out waiting for condition")
        await asyncio.sleep(0.01)


@pytest.fixture
def moderation_service() -> FakeModerationService:
    return FakeModerationService()


@pytest.fixture
def auth() -> AuthorizationContext:
    return AuthorizationContext(credential="Bearer test-key", policy_key="default")


@pytest.fixture
def server_factory(
    moderation_service: FakeModerationService,
) -> Callable[[AuthorizationContext], GuardrailServer]:
    """Build protocol servers whose moderation calls hit the fake service."""

    def build(auth: AuthorizationContext) -> GuardrailServer:
        client = ModerationClient(
            api_key=auth.credential,
            base_url=MODERATION_BASE_URL,
            transport=moderation_service.transport,
        )
        return GuardrailServer(auth, moderation=client)

    return build


@pytest.fixture
async def manager(server_factory) -> AsyncGenerator[SessionManager, None]:
    """A fresh session manager per test, drained afterwards."""
    manager = SessionManager(server_factory=server_factory)
    yield manager
    await manager.shutdown()


@pytest.fixture
def app(manager: SessionManager) -> FastAPI:
    app = create_app("all")
    app.dependency_overrides[get_session_manager] = lambda: manager
    return app


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return dict(AUTH_HEADERS)


@pytest.fixture
def initialize_request() -> dict[str, Any]:
    return json.loads(json.dumps(INITIALIZE))


async def call_with_dropped_client(
    app: FastAPI,
    method: str,
    path: str,
    headers: dict[str, str],
    body: bytes = b"",
    drop_on: str = "http.response.start",
) -> list[str]:
    """Drive the ASGI app with a client that vanishes mid-response.

    ``send`` raises OSError on the first message of type ``drop_on``, the
    way a server reports a closed socket. Returns the message types that
    were sent before the drop.
    """
    path, _, query = path.partition("?")
    scope = {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": "2.4"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": query.encode(),
        "root_path": "",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": ("testclient", 50000),
        "server": ("test", 80),
    }
    body_sent = False
    sent: list[str] = []

    async def receive() -> dict[str, Any]:
        nonlocal body_sent
        if not body_sent:
            body_sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return {"type": "http.disconnect"}

    async def send(message: dict[str, Any]) -> None:
        if message["type"] == drop_on:
            raise OSError("connection reset by peer")
        sent.append(message["type"])

    # The app surfaces the broken socket as an error; only the session state matters here
    with contextlib.suppress(Exception):
        await app(scope, receive, send)
    return sent


@pytest.fixture
def dropped_client() -> Callable[..., Any]:
    return call_with_dropped_client


@pytest.fixture
def sse_frames() -> Callable[[str], list[dict[str, Any]]]:
    return parse_sse


@pytest.fixture
def until() -> Callable[..., Any]:
    return wait_until


@pytest.fixture
def open_session(client: AsyncClient) -> Callable[..., Any]:
    """Run the initialize handshake and return the new session id."""

    async def _open(headers: dict[str, str] | None = None) -> str:
        response = await client.post("/mcp", json=INITIALIZE, headers=headers or AUTH_HEADERS)
        assert response.status_code == 200, response.text
        return response.headers["mcp-session-id"]

    return _open
