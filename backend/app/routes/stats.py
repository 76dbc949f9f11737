"""
SnipVault Backend — Statistics Route
======================================

GET /api/stats → total count plus the top ten languages and tags among the
snippets the caller may see (same visibility rules as listing).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_snippet_service, optional_identity, requester_id
from app.schemas.snippet import StatsResponse
from app.services.identity_base import Identity
from app.services.snippet_service import SnippetService

router = APIRouter(prefix="/api", tags=["Stats"])


@router.get("/stats", response_model=StatsResponse, summary="Snippet statistics")
async def get_stats(
    view: Optional[str] = Query(default=None, description="my | public | all"),
    identity: Optional[Identity] = Depends(optional_identity),
    service: SnippetService = Depends(get_snippet_service),
) -> StatsResponse:
    return await service.stats(requester_id(identity), view)
