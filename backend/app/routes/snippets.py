"""
SnipVault Backend — Snippet Route Handlers
============================================

What:  CRUD and listing endpoints under /api/snippets.
Why:   The HTTP face of SnippetService for the long-running server.
How:   Extracts query parameters and bodies, resolves the caller identity,
       delegates to SnippetService and returns camelCase JSON.

Auth:
    GET  /api/snippets          optional   (anonymous → public only)
    GET  /api/snippets/{id}     optional
    POST /api/snippets          required
    PUT  /api/snippets/{id}     required, owner only
    DELETE /api/snippets/{id}   required, owner only

List parameters are accepted as raw strings and parsed permissively by the
query builder, so `limit=abc` or `view=bogus` fall back to defaults instead
of failing the request.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import (
    get_snippet_service,
    optional_identity,
    require_identity,
    requester_id,
)
from app.schemas.snippet import (
    DeleteResponse,
    ErrorResponse,
    SnippetCreate,
    SnippetListResponse,
    SnippetResponse,
    SnippetUpdate,
)
from app.services.identity_base import Identity
from app.services.query_builder import SnippetQuery
from app.services.snippet_service import SnippetService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Snippets"])

_ERRORS = {
    400: {"description": "Invalid input or snippet id", "model": ErrorResponse},
    401: {"description": "Missing or invalid token", "model": ErrorResponse},
    404: {"description": "Snippet not found", "model": ErrorResponse},
    500: {"description": "Backing service unavailable", "model": ErrorResponse},
}


@router.get(
    "/snippets",
    response_model=SnippetListResponse,
    summary="List snippets visible to the caller",
)
async def list_snippets(
    search: Optional[str] = Query(default=None, description="Substring of title or description"),
    language: Optional[str] = Query(default=None),
    tags: Optional[str] = Query(default=None, description="Comma-separated; matches any"),
    page: Optional[str] = Query(default=None, description="1-based page, default 1"),
    limit: Optional[str] = Query(default=None, description="Page size 1-50, default 20"),
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    sort_order: Optional[str] = Query(default=None, alias="sortOrder"),
    view: Optional[str] = Query(default=None, description="my | public | all"),
    identity: Optional[Identity] = Depends(optional_identity),
    service: SnippetService = Depends(get_snippet_service),
) -> SnippetListResponse:
    query = SnippetQuery.from_params(
        view=view,
        search=search,
        language=language,
        tags=tags,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return await service.list(requester_id(identity), query)


@router.get(
    "/snippets/{snippet_id}",
    response_model=SnippetResponse,
    responses=_ERRORS,
    summary="Get one snippet",
)
async def get_snippet(
    snippet_id: str,
    identity: Optional[Identity] = Depends(optional_identity),
    service: SnippetService = Depends(get_snippet_service),
) -> SnippetResponse:
    return await service.get(snippet_id, requester_id(identity))


@router.post(
    "/snippets",
    response_model=SnippetResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Create a snippet owned by the caller",
)
async def create_snippet(
    payload: SnippetCreate,
    identity: Identity = Depends(require_identity),
    service: SnippetService = Depends(get_snippet_service),
) -> SnippetResponse:
    return await service.create(identity, payload)


@router.put(
    "/snippets/{snippet_id}",
    response_model=SnippetResponse,
    responses=_ERRORS,
    summary="Update a snippet the caller owns",
)
async def update_snippet(
    snippet_id: str,
    payload: SnippetUpdate,
    identity: Identity = Depends(require_identity),
    service: SnippetService = Depends(get_snippet_service),
) -> SnippetResponse:
    return await service.update(identity, snippet_id, payload)


@router.delete(
    "/snippets/{snippet_id}",
    response_model=DeleteResponse,
    responses=_ERRORS,
    summary="Delete a snippet the caller owns",
)
async def delete_snippet(
    snippet_id: str,
    identity: Identity = Depends(require_identity),
    service: SnippetService = Depends(get_snippet_service),
) -> DeleteResponse:
    return await service.delete(identity, snippet_id)
