"""
SnipVault Backend — Rate Limit Middleware Tests
=================================================

What:  The per-IP limiter through the full app stack, with a ceiling of 2.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.main import create_app


@pytest_asyncio.fixture
async def limited_client(store, identity_provider):
    app = create_app(store=store, identity_provider=identity_provider, rate_limit_requests=2)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestRateLimit:

    @pytest.mark.asyncio
    async def test_third_request_is_429_with_retry_after(self, limited_client):
        for _ in range(2):
            response = await limited_client.get("/api/snippets", params={"view": "public"})
            assert response.status_code == 200

        response = await limited_client.get("/api/snippets", params={"view": "public"})
        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1
        body = response.json()
        assert body["error"] == "rate_limit_exceeded"
        assert body["details"][0]["message"].startswith("retry after ")

    @pytest.mark.asyncio
    async def test_429_carries_request_id(self, limited_client):
        for _ in range(2):
            await limited_client.get("/api/stats")

        echoed = await limited_client.get("/api/stats", headers={"X-Request-ID": "trace-429"})
        assert echoed.status_code == 429
        assert echoed.headers["X-Request-ID"] == "trace-429"
        assert echoed.json()["request_id"] == "trace-429"

        generated = await limited_client.get("/api/stats")
        assert generated.status_code == 429
        assert generated.headers["X-Request-ID"]
        assert generated.json()["request_id"] == generated.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_health_is_never_limited(self, limited_client):
        for _ in range(5):
            response = await limited_client.get("/health")
            assert response.status_code == 200

        assert (await limited_client.get("/api/stats")).status_code == 200

    @pytest.mark.asyncio
    async def test_preflight_is_not_counted(self, limited_client):
        for _ in range(3):
            await limited_client.options(
                "/api/snippets",
                headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
            )

        assert (await limited_client.get("/api/stats")).status_code == 200
