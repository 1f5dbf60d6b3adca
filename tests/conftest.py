import asyncio
import json
import os
from typing import Callable, Generator, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from careeros_chat.config import Settings
from careeros_chat.main import create_app


class FakeWebSocket:
    """Stands in for a Starlette WebSocket in relay unit tests."""

    def __init__(self, fail_send: bool = False):
        self.sent: List[str] = []
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.closed_with: Optional[tuple] = None
        self.fail_send = fail_send
        # set to an unset asyncio.Event to make sends hang (slow reader)
        self.gate: Optional[asyncio.Event] = None

    async def send_text(self, text: str) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_send:
            raise RuntimeError("connection reset by peer")
        self.sent.append(text)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed_with = (code, reason)
        self.application_state = WebSocketState.DISCONNECTED

    def frames(self) -> List[dict]:
        return [json.loads(text) for text in self.sent]

    def frames_of(self, message_type: str) -> List[dict]:
        return [f for f in self.frames() if f["type"] == message_type]


@pytest.fixture
def run() -> Callable:
    """Run a coroutine to completion on a fresh event loop"""
    return asyncio.run


@pytest.fixture
def make_client() -> Callable[..., TestClient]:
    """Build a TestClient over an app with settings overrides.

    Use it as a context manager so every socket shares one event loop.
    """

    def factory(**overrides) -> TestClient:
        overrides.setdefault("message_store_backend", "memory")
        overrides.setdefault("log_level", "WARNING")
        return TestClient(create_app(Settings(**overrides)))

    return factory


@pytest.fixture
def client(make_client) -> Generator[TestClient, None, None]:
    with make_client() as test_client:
        yield test_client


# Live-server fixtures, see test_api_integration.py

@pytest.fixture(scope="session")
def base_url() -> str:
    return os.getenv("BASE_URL", "http://localhost:8000/api/v1")


@pytest.fixture(scope="session")
def root_url(base_url: str) -> str:
    marker = "/api/v1"
    if marker in base_url:
        return base_url.split(marker)[0]
    return base_url.rsplit("/", 1)[0]


@pytest.fixture(scope="session")
def http_client() -> Generator[httpx.Client, None, None]:
    with httpx.Client(timeout=30.0) as session:
        yield session
