"""
SnipVault Backend — Serverless Handler
========================================

What:  Entry point for function-as-a-service deployments behind an API
       gateway: `app.serverless.handler(event, context)`.
Why:   Same routes, validation, service and error mapping as the FastAPI
       app, for platforms that invoke a function per request.
How:   Each invocation opens its own SnippetStore in an `async with` block
       (no connection survives between invocations) and runs the request
       through SnippetService.

Event shape (REST and HTTP API payloads both accepted):
    method:  requestContext.http.method | httpMethod
    path:    rawPath | path              (with or without the /api prefix)
    headers, queryStringParameters, body, isBase64Encoded

Response shape:
    {"statusCode": int, "headers": {...}, "body": "<json>"}

Routes:
    OPTIONS *                   → 204 (CORS preflight)
    GET    /api/snippets        → list
    POST   /api/snippets        → create (201)
    GET    /api/snippets/{id}   → detail
    PUT    /api/snippets/{id}   → update
    DELETE /api/snippets/{id}   → delete
    GET    /api/stats           → stats
    GET    /health              → database ping
"""

import asyncio
import base64
import binascii
import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

import pydantic

from app import __version__
from app.config import settings
from app.database import SnippetStore
from app.exceptions import (
    AuthenticationError,
    SnipVaultError,
    UpstreamUnavailableError,
    ValidationError,
    error_body,
    error_headers,
    unexpected_error_body,
)
from app.middleware.request_id import request_id_var, resolve_request_id
from app.schemas.snippet import SnippetCreate, SnippetUpdate
from app.services.identity_base import Identity, IdentityProvider, extract_bearer_token
from app.services.jwt_identity import JWTIdentityProvider
from app.services.query_builder import SnippetQuery
from app.services.snippet_service import SnippetService

logger = logging.getLogger(__name__)

_SNIPPETS_PATH = re.compile(r"^(?:/api)?/snippets(?:/(?P<snippet_id>[^/]+))?/?$")
_STATS_PATH = re.compile(r"^(?:/api)?/stats/?$")
_HEALTH_PATH = re.compile(r"^/health/?$")


# ---------------------------------------------------------------------------
# Request / response helpers
# ---------------------------------------------------------------------------


def _parse_request(event: Dict[str, Any]) -> Tuple[str, str, Dict[str, str], Dict[str, str]]:
    """method, path, lower-cased headers, query parameters."""
    method = (
        (event.get("requestContext") or {}).get("http", {}).get("method")
        or event.get("httpMethod")
        or ""
    ).upper()
    path = event.get("rawPath") or event.get("path") or "/"
    headers = {str(k).lower(): v for k, v in (event.get("headers") or {}).items()}
    query = event.get("queryStringParameters") or {}
    return method, path, headers, query


def _json_body(event: Dict[str, Any]) -> Any:
    raw = event.get("body")
    if raw is None or raw == "":
        return {}
    try:
        if event.get("isBase64Encoded"):
            raw = base64.b64decode(raw, validate=True).decode("utf-8")
        return json.loads(raw)
    except (ValueError, binascii.Error) as e:
        raise ValidationError("Request body must be valid JSON", field="body") from e


def _validate(model: type, data: Any) -> Any:
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError.from_pydantic(e.errors()) from e


def _cors_headers(headers: Dict[str, str]) -> Dict[str, str]:
    allowed = settings.cors_origins_list
    origin = headers.get("origin", "")
    return {
        "Access-Control-Allow-Origin": origin if origin in allowed else (allowed[0] if allowed else ""),
        "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type, X-Request-ID",
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


def _response(
    status_code: int,
    body: Any,
    request_headers: Dict[str, str],
    request_id: str,
    extra_headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    if isinstance(body, pydantic.BaseModel):
        body = body.model_dump(mode="json", by_alias=True)
    return {
        "statusCode": status_code,
        "headers": {
            **_cors_headers(request_headers),
            "Content-Type": "application/json",
            "X-Request-ID": request_id,
            **(extra_headers or {}),
        },
        "body": json.dumps(body),
    }


def _route_not_found(request_id: str) -> Dict[str, Any]:
    return {"error": "not_found", "message": "Route not found", "request_id": request_id}


def _method_not_allowed(method: str, request_id: str) -> Dict[str, Any]:
    return {
        "error": "method_not_allowed",
        "message": f"Method {method} not allowed.",
        "request_id": request_id,
    }


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


async def _identity(
    provider: IdentityProvider,
    headers: Dict[str, str],
    required: bool,
) -> Optional[Identity]:
    token = extract_bearer_token(headers.get("authorization"))
    if token is None:
        if required:
            raise AuthenticationError("No valid authorization token provided")
        return None
    if required:
        return await provider.verify(token)
    try:
        return await provider.verify(token)
    except AuthenticationError:
        return None


def _requester(identity: Optional[Identity]) -> Optional[str]:
    return identity.id if identity else None


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


async def _dispatch(
    event: Dict[str, Any],
    method: str,
    path: str,
    headers: Dict[str, str],
    query: Dict[str, str],
    store: SnippetStore,
    provider: IdentityProvider,
) -> Tuple[int, Any]:
    service = SnippetService(store)

    if _STATS_PATH.search(path):
        if method != "GET":
            return 405, None
        identity = await _identity(provider, headers, required=False)
        return 200, await service.stats(_requester(identity), query.get("view"))

    match = _SNIPPETS_PATH.search(path)
    if match is None:
        if not _HEALTH_PATH.search(path):
            return 404, None
        if method != "GET":
            return 405, None
        ok = await store.ping()
        return (200 if ok else 503), {
            "status": "healthy" if ok else "unhealthy",
            "version": __version__,
            "database": "connected" if ok else "disconnected",
        }

    snippet_id = match.group("snippet_id")

    if snippet_id is None:
        if method == "GET":
            identity = await _identity(provider, headers, required=False)
            snippet_query = SnippetQuery.from_params(
                view=query.get("view"),
                search=query.get("search"),
                language=query.get("language"),
                tags=query.get("tags"),
                page=query.get("page"),
                limit=query.get("limit"),
                sort_by=query.get("sortBy"),
                sort_order=query.get("sortOrder"),
            )
            return 200, await service.list(_requester(identity), snippet_query)
        if method == "POST":
            identity = await _identity(provider, headers, required=True)
            payload = _validate(SnippetCreate, _json_body(event))
            return 201, await service.create(identity, payload)
        return 405, None

    if method == "GET":
        identity = await _identity(provider, headers, required=False)
        return 200, await service.get(snippet_id, _requester(identity))
    if method == "PUT":
        identity = await _identity(provider, headers, required=True)
        payload = _validate(SnippetUpdate, _json_body(event))
        return 200, await service.update(identity, snippet_id, payload)
    if method == "DELETE":
        identity = await _identity(provider, headers, required=True)
        return 200, await service.delete(identity, snippet_id)
    return 405, None


async def handle_event(
    event: Dict[str, Any],
    store: Optional[SnippetStore] = None,
    identity_provider: Optional[IdentityProvider] = None,
) -> Dict[str, Any]:
    """
    Serve one API-gateway event.

    `store` and `identity_provider` are for tests and embedding; when omitted
    both are created from settings and closed before returning.
    """
    method, path, headers, query = _parse_request(event)
    rid = resolve_request_id(headers.get("x-request-id"))
    request_id_var.set(rid)

    if method == "OPTIONS":
        return {"statusCode": 204, "headers": _cors_headers(headers), "body": ""}

    owned_provider = identity_provider is None
    provider = identity_provider or JWTIdentityProvider.from_settings(settings)
    try:
        if store is not None:
            status, body = await _dispatch(event, method, path, headers, query, store, provider)
        else:
            async with SnippetStore.from_settings(settings) as invocation_store:
                status, body = await _dispatch(
                    event, method, path, headers, query, invocation_store, provider
                )
    except SnipVaultError as exc:
        if isinstance(exc, UpstreamUnavailableError):
            logger.error("[%s] %s unavailable | Context: %s", rid, exc.service, exc.context)
        else:
            logger.info("[%s] %s %s → %s: %s", rid, method, path, exc.error_code, exc.message)
        return _response(exc.status_code, error_body(exc, rid), headers, rid, error_headers(exc))
    except Exception as exc:
        logger.error("[%s] Unexpected error: %s", rid, exc, exc_info=True)
        return _response(500, unexpected_error_body(rid), headers, rid)
    finally:
        if owned_provider:
            await provider.aclose()

    if status == 404 and body is None:
        return _response(404, _route_not_found(rid), headers, rid)
    if status == 405 and body is None:
        return _response(405, _method_not_allowed(method, rid), headers, rid)

    logger.info("[%s] %s %s %d", rid, method, path, status)
    return _response(status, body, headers, rid)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Synchronous entry point invoked by the function runtime."""
    return asyncio.run(handle_event(event))
