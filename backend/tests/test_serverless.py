"""
SnipVault Backend — Serverless Handler Tests
==============================================

What:  The API-gateway event adapter serves the same routes with the same
       status codes and bodies as the FastAPI app.
"""

import base64
import json
import uuid

import pytest

from app.serverless import handle_event
from conftest import mint_token

SNIPPET = {"title": "Retry", "language": "Python", "code": "pass", "tags": ["Net"]}


def event(method, path, body=None, token=None, query=None, http_api=False, **extra):
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    evt = {
        "headers": headers,
        "queryStringParameters": query,
        "body": json.dumps(body) if body is not None else None,
        **extra,
    }
    if http_api:
        evt["requestContext"] = {"http": {"method": method}}
        evt["rawPath"] = path
    else:
        evt["httpMethod"] = method
        evt["path"] = path
    return evt


async def call(evt, store, identity_provider):
    response = await handle_event(evt, store=store, identity_provider=identity_provider)
    body = json.loads(response["body"]) if response["body"] else None
    return response["statusCode"], body, response["headers"]


class TestServerlessRoutes:

    @pytest.mark.asyncio
    async def test_preflight(self, store, identity_provider):
        status, body, headers = await call(event("OPTIONS", "/api/snippets"), store, identity_provider)
        assert status == 204
        assert body is None
        assert "Access-Control-Allow-Methods" in headers

    @pytest.mark.asyncio
    async def test_create_and_get(self, store, identity_provider):
        token = mint_token("user-1", email="one@example.com")
        status, created, headers = await call(
            event("POST", "/api/snippets", SNIPPET, token), store, identity_provider
        )
        assert status == 201
        assert created["tags"] == ["net"]
        assert created["ownerId"] == "user-1"
        assert headers["Content-Type"] == "application/json"

        # HTTP API payload, no /api prefix
        status, fetched, _ = await call(
            event("GET", f"/snippets/{created['id']}", token=token, http_api=True),
            store,
            identity_provider,
        )
        assert status == 200
        assert fetched["id"] == created["id"]

    @pytest.mark.asyncio
    async def test_base64_body(self, store, identity_provider):
        evt = event("POST", "/api/snippets", token=mint_token("user-1"))
        evt["body"] = base64.b64encode(json.dumps(SNIPPET).encode()).decode()
        evt["isBase64Encoded"] = True
        status, _, _ = await call(evt, store, identity_provider)
        assert status == 201

    @pytest.mark.asyncio
    async def test_list_is_public_for_anonymous(self, store, identity_provider):
        token = mint_token("user-1")
        await call(event("POST", "/api/snippets", SNIPPET, token), store, identity_provider)
        await call(
            event("POST", "/api/snippets", {**SNIPPET, "isPublic": True}, token),
            store,
            identity_provider,
        )

        status, body, _ = await call(
            event("GET", "/api/snippets", query={"view": "all", "limit": "0"}),
            store,
            identity_provider,
        )
        assert status == 200
        assert len(body["snippets"]) == 1
        assert body["pagination"]["limit"] == 1

    @pytest.mark.asyncio
    async def test_error_mapping_matches_http_api(self, store, identity_provider):
        status, body, headers = await call(
            event("POST", "/api/snippets", SNIPPET), store, identity_provider
        )
        assert status == 401
        assert headers["WWW-Authenticate"] == "Bearer"

        token = mint_token("user-1")
        status, body, _ = await call(
            event("POST", "/api/snippets", {**SNIPPET, "title": ""}, token), store, identity_provider
        )
        assert status == 400
        assert body["details"] == [{"field": "title", "message": "Title is required"}]

        status, body, _ = await call(
            event("GET", "/api/snippets/xyz"), store, identity_provider
        )
        assert (status, body["error"]) == (400, "invalid_id")

        status, body, _ = await call(
            event("DELETE", f"/api/snippets/{uuid.uuid4()}", token=token), store, identity_provider
        )
        assert (status, body["message"]) == (404, "Snippet not found")

    @pytest.mark.asyncio
    async def test_invalid_json_body(self, store, identity_provider):
        evt = event("POST", "/api/snippets", token=mint_token("user-1"))
        evt["body"] = "{not json"
        status, body, _ = await call(evt, store, identity_provider)
        assert status == 400
        assert body["error"] == "validation_error"

        evt["body"] = base64.b64encode(b"\xff\xfe{").decode()
        evt["isBase64Encoded"] = True
        status, body, _ = await call(evt, store, identity_provider)
        assert status == 400
        assert body["error"] == "validation_error"

        evt["body"] = "not base64!"
        status, body, _ = await call(evt, store, identity_provider)
        assert status == 400
        assert body["details"] == [{"field": "body", "message": "Request body must be valid JSON"}]

    @pytest.mark.asyncio
    async def test_update_delete_and_stats(self, store, identity_provider):
        token = mint_token("user-1")
        _, created, _ = await call(
            event("POST", "/api/snippets", SNIPPET, token), store, identity_provider
        )
        path = f"/api/snippets/{created['id']}"

        status, updated, _ = await call(
            event("PUT", path, {"title": "Retry v2"}, token), store, identity_provider
        )
        assert (status, updated["title"]) == (200, "Retry v2")

        status, stats, _ = await call(event("GET", "/api/stats", token=token), store, identity_provider)
        assert status == 200
        assert stats["topLanguages"] == [{"_id": "python", "count": 1}]

        status, deleted, _ = await call(event("DELETE", path, token=token), store, identity_provider)
        assert (status, deleted["message"]) == (200, "Snippet deleted successfully")

    @pytest.mark.asyncio
    async def test_unknown_route_and_method(self, store, identity_provider):
        status, body, _ = await call(event("GET", "/api/nothing"), store, identity_provider)
        assert (status, body["error"]) == (404, "not_found")

        status, body, _ = await call(event("PATCH", "/api/snippets"), store, identity_provider)
        assert status == 405

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/anything/snippets", "/v2/api/stats", "/x/health"])
    async def test_routes_match_from_path_start(self, store, identity_provider, path):
        status, body, _ = await call(event("GET", path), store, identity_provider)
        assert (status, body["error"]) == (404, "not_found")

    @pytest.mark.asyncio
    async def test_health(self, store, identity_provider):
        status, body, _ = await call(event("GET", "/health"), store, identity_provider)
        assert (status, body["database"]) == (200, "connected")
