"""Shared fixtures."""

import httpx
import pytest
import pytest_asyncio

from gateway.config import Settings
from gateway.core.relay import EventRelay, WebhookClient
from gateway.core.session import ImmediateReconnect, SessionManager
from gateway.infra.credentials import FileCredentialStore
from gateway.main import create_app
from tests.fakes import WEBHOOK_URL, FakeBackend


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and the working directory."""
    return Settings(
        _env_file=None,
        api_key="",
        webhook_url="",
        protocol_backend="",
        auth_dir=str(tmp_path / "auth"),
        upload_dir=str(tmp_path / "uploads"),
        reconnect_strategy="immediate",
        reconnect_min_delay=0.0,
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def store(tmp_path):
    return FileCredentialStore(tmp_path / "auth")


@pytest_asyncio.fixture
async def manager(backend, store):
    """Session manager over the fake backend. Not started."""
    manager = SessionManager(backend, store, policy=ImmediateReconnect(min_delay=0.0))
    yield manager
    await manager.stop()


@pytest.fixture
def webhook_requests():
    """Requests received by the mock webhook sink."""
    return []


@pytest_asyncio.fixture
async def webhook(webhook_requests):
    """WebhookClient backed by an in-memory transport."""

    def handler(request: httpx.Request) -> httpx.Response:
        webhook_requests.append(request)
        return httpx.Response(200, json={"received": True})

    client = WebhookClient(WEBHOOK_URL, transport=httpx.MockTransport(handler))
    yield client
    await client.aclose()


@pytest.fixture
def relay(manager):
    return EventRelay(manager, webhook=None)


@pytest_asyncio.fixture
async def client(settings, manager, relay):
    """HTTP client against an app wired to the fake session."""
    app = create_app(settings=settings, session_manager=manager, event_relay=relay)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
