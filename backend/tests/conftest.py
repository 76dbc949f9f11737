"""
SnipVault Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test that touches data gets its own file-backed SQLite database
       (aiosqlite) under pytest's tmp_path, so tests never share rows.
       Tokens are minted with python-jose against a shared HS256 secret.

Fixture Hierarchy (all function-scoped):
    store              connected SnippetStore with the schema created
    └── service        SnippetService over that store
    identity_provider  JWTIdentityProvider(secret=TEST_SECRET, HS256)
    make_token         token factory: make_token("user-1", email=..., expires_in=...)
    auth_headers       header factory: auth_headers("user-1") → {"Authorization": ...}
    test_client        httpx AsyncClient over ASGITransport, wired to the above
"""

import os

# Override settings for testing BEFORE any app imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./snipvault_test.db"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["AUTH_JWKS_URL"] = ""
os.environ["AUTH_JWT_SECRET"] = "test-secret-not-real"
os.environ["AUTH_JWT_ALGORITHMS"] = "HS256"

import time
from typing import Callable, Dict, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt

from app.database import SnippetStore
from app.services.jwt_identity import JWTIdentityProvider
from app.services.snippet_service import SnippetService

TEST_SECRET = "test-secret-not-real"


@pytest_asyncio.fixture
async def store(tmp_path):
    """A connected store backed by a fresh SQLite file."""
    snippet_store = SnippetStore(
        f"sqlite+aiosqlite:///{tmp_path / 'snipvault.db'}",
        startup_attempts=1,
    )
    await snippet_store.connect()
    await snippet_store.create_schema()
    yield snippet_store
    await snippet_store.close()


@pytest.fixture
def service(store):
    return SnippetService(store)


@pytest_asyncio.fixture
async def identity_provider():
    provider = JWTIdentityProvider(secret=TEST_SECRET, algorithms=["HS256"])
    yield provider
    await provider.aclose()


def mint_token(
    subject: Optional[str],
    email: Optional[str] = None,
    expires_in: int = 3600,
    secret: str = TEST_SECRET,
    **claims,
) -> str:
    payload = {"iat": int(time.time()), "exp": int(time.time()) + expires_in, **claims}
    if subject is not None:
        payload["sub"] = subject
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def make_token() -> Callable[..., str]:
    return mint_token


@pytest.fixture
def auth_headers() -> Callable[..., Dict[str, str]]:
    def _headers(subject: str, email: Optional[str] = None) -> Dict[str, str]:
        return {"Authorization": f"Bearer {mint_token(subject, email=email)}"}

    return _headers


@pytest_asyncio.fixture
async def test_client(store, identity_provider):
    """
    HTTP client for endpoint tests.

    ASGITransport does not run the lifespan, so the app is built with the
    test store and provider injected.
    """
    from app.main import create_app

    app = create_app(store=store, identity_provider=identity_provider)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
