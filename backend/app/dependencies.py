"""
SnipVault Backend — FastAPI Dependencies
==========================================

What:  Request-scoped wiring: the store, the service and the caller identity.
Why:   Routes stay thin; they declare what they need and FastAPI injects it.
How:   The store and identity provider live on app.state (set by create_app or
       the lifespan), so every request reuses the same pool and JWKS cache.

Auth modes:
    require_identity   → missing/invalid token is a 401
    optional_identity  → missing/invalid token degrades to anonymous (None);
                         an unreachable identity provider is still an error
"""

import logging
from typing import Optional

from fastapi import Depends, Request

from app.database import SnippetStore
from app.exceptions import AuthenticationError
from app.services.identity_base import Identity, IdentityProvider, extract_bearer_token
from app.services.snippet_service import SnippetService

logger = logging.getLogger(__name__)


def get_store(request: Request) -> SnippetStore:
    return request.app.state.store


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


def get_snippet_service(store: SnippetStore = Depends(get_store)) -> SnippetService:
    return SnippetService(store)


async def require_identity(
    request: Request,
    provider: IdentityProvider = Depends(get_identity_provider),
) -> Identity:
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise AuthenticationError("No valid authorization token provided")
    return await provider.verify(token)


async def optional_identity(
    request: Request,
    provider: IdentityProvider = Depends(get_identity_provider),
) -> Optional[Identity]:
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        return None
    try:
        return await provider.verify(token)
    except AuthenticationError as e:
        logger.debug("Ignoring rejected token on public route: %s", e.message)
        return None


def requester_id(identity: Optional[Identity]) -> Optional[str]:
    return identity.id if identity else None
