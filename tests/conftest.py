"""Shared pytest fixtures."""

import asyncio
from datetime import datetime, timedelta
from typing import Any

import httpx
import pytest
from jose import jwt

from fixmate_client.app import App
from fixmate_client.config import Config
from fixmate_client.core.modules.session.issuer import CredentialIssuer
from fixmate_client.core.modules.session.models import Credential
from fixmate_client.core.modules.storage.storage import MemoryStorage
from fixmate_client.core.scheduler import ManualScheduler


def make_token(expires_at: datetime, jti: str = "0") -> str:
    """Build a signed JWT carrying an exp claim."""
    return jwt.encode({"sub": "user-1", "exp": int(expires_at.timestamp()), "jti": jti}, "test-secret", algorithm="HS256")


def make_notification(notification_id: str, priority: str = "normal", is_read: bool = False) -> dict[str, Any]:
    """Notification payload as the backend sends it."""
    return {
        "_id": notification_id,
        "title": f"Notification {notification_id}",
        "message": "Body",
        "type": "booking",
        "priority": priority,
        "isRead": is_read,
        "createdAt": "2024-01-01T00:00:00Z",
    }


class FakeIssuer(CredentialIssuer):
    """Issuer double: counts calls, optionally blocks on a gate, raises queued errors."""

    def __init__(self, scheduler: ManualScheduler) -> None:
        self.calls = 0
        self.errors: list[Exception] = []
        self.gate: asyncio.Event | None = None
        self._scheduler = scheduler

    async def issue(self) -> Credential:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.errors:
            raise self.errors.pop(0)
        return Credential.from_token(make_token(self._scheduler.now() + timedelta(hours=1), jti=f"issued-{self.calls}"))


class FakeBackend:
    """In-memory backend served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.unread: list[dict[str, Any]] = []
        self.unread_count = 0
        self.requests: list[httpx.Request] = []
        self.reject_tokens: set[str] = set()
        self.reject_all = False
        self.fail_status: int | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if self.reject_all or token in self.reject_tokens:
            return httpx.Response(401, json={"message": "Unauthorized"})
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"success": False, "message": "Backend failure"})

        path = request.url.path
        if request.method == "GET" and path == "/api/v1/notifications":
            limit = int(request.url.params.get("limit", "20"))
            return httpx.Response(200, json={"success": True, "data": self.unread[:limit]})
        if request.method == "GET" and path == "/api/v1/notifications/unread-count":
            return httpx.Response(200, json={"success": True, "count": self.unread_count})
        if request.method in ("PUT", "DELETE") and path.startswith("/api/v1/notifications"):
            return httpx.Response(200, json={"success": True})
        if path == "/api/v1/bookings":
            return httpx.Response(200, json={"success": True, "data": []})
        return httpx.Response(404, json={"message": "Not found"})

    def count(self, method: str, path: str) -> int:
        return sum(1 for request in self.requests if request.method == method and request.url.path == path)


@pytest.fixture
def config():
    """Client configuration pointing at the fake backend."""
    return Config(api_url="http://api.test/api/v1", identity_url="http://id.test/auth")


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def issuer(scheduler):
    return FakeIssuer(scheduler)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def persistent_storage():
    return MemoryStorage()


@pytest.fixture
async def app(config, scheduler, issuer, backend, persistent_storage):
    """Client facade with started services; no refresh or poll loop is running."""
    app = App(
        config,
        issuer=issuer,
        scheduler=scheduler,
        transport=httpx.MockTransport(backend.handler),
        persistent_storage=persistent_storage,
    )
    await app.core.services.start_all()
    yield app
    await app.core.services.stop_all()
    await app.core.http_client.aclose()


@pytest.fixture
def signed_in(app, scheduler):
    """Sign in with a credential valid for one hour and return its token."""
    token = make_token(scheduler.now() + timedelta(hours=1), jti="signin")
    app.core.services.session.sign_in(Credential.from_token(token), {"id": "user-1", "name": "Test User"})
    return token
