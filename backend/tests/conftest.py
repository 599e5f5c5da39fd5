"""
Clutch Backend — Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment overrides are applied BEFORE any clutch import so that the
       module-level settings pick them up. Every API test gets a fresh app
       over its own MemoryDocumentStore, flag service and email provider.

Fixture Hierarchy:
    Function-scoped:
    ├── store:           empty MemoryDocumentStore
    ├── flags:           empty InMemoryFeatureFlagService
    ├── mailer:          RecordingEmailProvider (captures deliveries)
    ├── app / client:    create_app(...) wrapped in an HTTPX AsyncClient
    ├── user / other / admin:  Callers with fresh UUIDs
    └── token:           mints "Authorization: Bearer" headers for a Caller
"""

import os
import uuid
from typing import Dict, List, Tuple

os.environ["STORE_BACKEND"] = "memory"
os.environ["JWT_SECRET"] = "test-secret-not-real"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["DEBUG"] = "false"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt

from clutch.auth import Caller
from clutch.config import settings
from clutch.main import create_app
from clutch.services.email_service import EmailProvider
from clutch.services.feature_flags import InMemoryFeatureFlagService
from clutch.services.memory_store import MemoryDocumentStore


class RecordingEmailProvider(EmailProvider):
    """Keeps every delivery; fails for recipients listed in `fail_for`."""

    def __init__(self, fail_for: Tuple[str, ...] = ()):
        self.sent: List[Tuple[str, str, str]] = []
        self.fail_for = fail_for

    async def deliver(self, recipient: str, subject: str, html: str) -> None:
        if recipient in self.fail_for:
            raise ConnectionError("SMTP connection refused")
        self.sent.append((recipient, subject, html))


def make_caller(role: str = "user") -> Caller:
    return Caller(id=str(uuid.uuid4()), role=role, email=f"{role}@example.com")


def bearer(caller: Caller) -> Dict[str, str]:
    token = jwt.encode(
        {"sub": caller.id, "role": caller.role, "email": caller.email},
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    return {"Authorization": f"Bearer {token}"}


# ══════════════════════════════════════════════════════════════════════════
# Collaborators
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def flags():
    return InMemoryFeatureFlagService()


@pytest.fixture
def mailer():
    return RecordingEmailProvider(fail_for=("bounce@example.com",))


# ══════════════════════════════════════════════════════════════════════════
# Callers
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def user():
    return make_caller("user")


@pytest.fixture
def other():
    return make_caller("user")


@pytest.fixture
def admin():
    return make_caller("admin")


@pytest.fixture
def token():
    """Headers factory: `token(caller)` → {"Authorization": "Bearer ..."}."""
    return bearer


# ══════════════════════════════════════════════════════════════════════════
# Application
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def app(store, flags, mailer):
    return create_app(store=store, feature_flags=flags, email_provider=mailer)


@pytest_asyncio.fixture
async def client(app):
    """
    HTTPX AsyncClient routed straight into the ASGI app.

    Usage:
        async def test_health(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
