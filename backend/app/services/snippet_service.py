"""
SnipVault Backend — Snippet Service (Business Logic Orchestrator)
===================================================================

What:  create / get / list / update / delete / stats for snippets.
Why:   Both transports (FastAPI router, serverless handler) call this one
       class, so visibility, ownership and validation behave identically.
How:   Each operation opens exactly one transaction on the injected
       SnippetStore. WHERE clauses come from the query builder; bodies
       arrive already validated by the pydantic schemas.

Mutation Flow (PUT / DELETE):
    ┌──────────────┐    ┌──────────────────────────────┐    ┌───────────────┐
    │  Parse id    │───▶│  UPDATE/DELETE ... WHERE      │───▶│ Rewrite tags  │
    │  (400 if     │    │  id = :id AND owner = :me     │    │ (only if the  │
    │  malformed)  │    │  rowcount 0 → 404             │    │  row matched) │
    └──────────────┘    └──────────────────────────────┘    └───────────────┘

    The ownership check and the write are one statement, so there is no
    read-then-write window in which ownership could change.

Error Handling Strategy:
    Application errors (SnipVaultError) propagate unchanged. Driver and
    connection errors are logged with their type and wrapped in
    UpstreamUnavailableError, which hides internal details from clients.
    Nothing here retries.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import SnippetStore
from app.exceptions import (
    MalformedIdentifierError,
    NotFoundError,
    SnipVaultError,
    UpstreamUnavailableError,
)
from app.models.snippet import Snippet, SnippetTag, utcnow
from app.schemas.snippet import (
    CountEntry,
    DeleteResponse,
    PaginationInfo,
    SnippetCreate,
    SnippetListResponse,
    SnippetResponse,
    SnippetUpdate,
    StatsResponse,
)
from app.services.identity_base import Identity
from app.services.query_builder import (
    SnippetQuery,
    View,
    build_count_statement,
    build_detail_statement,
    build_list_statement,
    page_count,
    parse_view,
    visibility_clause,
)

logger = logging.getLogger(__name__)

STATS_TOP_N = 10


def parse_snippet_id(raw: Any) -> uuid.UUID:
    """Reject anything that is not a UUID before it reaches the database."""
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw).strip())
    except (ValueError, AttributeError, TypeError) as e:
        raise MalformedIdentifierError(raw_id=str(raw)[:64]) from e


class SnippetService:
    """
    Business logic layer for snippet operations.

    Responsibilities:
        - create(): stamp ownership and timestamps, persist
        - get():    one snippet the caller may see, else 404
        - list():   filtered, sorted, paginated listing
        - update(): owner-guarded partial update
        - delete(): owner-guarded permanent delete
        - stats():  totals and top languages/tags under the same visibility

    Holds only the store reference; no per-request state.
    """

    def __init__(self, store: SnippetStore):
        self.store = store

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.store.session() as session:
                yield session
        except SnipVaultError:
            raise
        except (SQLAlchemyError, OSError, TimeoutError) as e:
            logger.error("Database error during %s: %s", operation, type(e).__name__)
            raise UpstreamUnavailableError(
                service="database",
                context={"operation": operation, "error_type": type(e).__name__},
            ) from e

    # ── Writes ────────────────────────────────────────────────────────────

    async def create(self, identity: Identity, payload: SnippetCreate) -> SnippetResponse:
        """
        Persist a new snippet owned by `identity`.

        createdAt and updatedAt are set from one clock reading so they are equal.
        """
        now = utcnow()
        async with self._transaction("create") as session:
            snippet = Snippet(
                id=uuid.uuid4(),
                owner_id=identity.id,
                owner_email=identity.email,
                title=payload.title,
                description=payload.description,
                language=payload.language,
                code=payload.code,
                is_public=payload.is_public,
                created_at=now,
                updated_at=now,
            )
            snippet.tags = payload.tags
            session.add(snippet)
            await session.flush()
            response = SnippetResponse.model_validate(snippet)

        logger.info("Snippet %s created by %s", response.id, identity.id)
        return response

    async def update(
        self,
        identity: Identity,
        snippet_id: Any,
        payload: SnippetUpdate,
    ) -> SnippetResponse:
        """
        Apply the supplied fields to a snippet the caller owns.

        Raises:
            MalformedIdentifierError: id is not a UUID
            NotFoundError: no such snippet, or it belongs to someone else
        """
        target = parse_snippet_id(snippet_id)
        changes = payload.changes()
        tags = changes.pop("tags", None)

        values = dict(changes)
        values["updated_at"] = utcnow()
        if identity.email:
            values["owner_email"] = identity.email

        async with self._transaction("update") as session:
            result = await session.execute(
                update(Snippet)
                .where(Snippet.id == target, Snippet.owner_id == identity.id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError()

            if tags is not None:
                await session.execute(delete(SnippetTag).where(SnippetTag.snippet_id == target))
                session.add_all(
                    SnippetTag(snippet_id=target, position=position, tag=tag)
                    for position, tag in enumerate(tags)
                )
                await session.flush()

            snippet = (
                await session.execute(
                    select(Snippet)
                    .where(Snippet.id == target)
                    .execution_options(populate_existing=True)
                )
            ).scalar_one()
            response = SnippetResponse.model_validate(snippet)

        logger.info(
            "Snippet %s updated by %s (fields=%s)",
            target,
            identity.id,
            ",".join(sorted(payload.changes())),
        )
        return response

    async def delete(self, identity: Identity, snippet_id: Any) -> DeleteResponse:
        """Permanently remove a snippet the caller owns, with its tag rows."""
        target = parse_snippet_id(snippet_id)

        async with self._transaction("delete") as session:
            result = await session.execute(
                delete(Snippet)
                .where(Snippet.id == target, Snippet.owner_id == identity.id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError()
            await session.execute(delete(SnippetTag).where(SnippetTag.snippet_id == target))

        logger.info("Snippet %s deleted by %s", target, identity.id)
        return DeleteResponse()

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get(self, snippet_id: Any, requester_id: Optional[str] = None) -> SnippetResponse:
        """One snippet: the caller's own, or any public one."""
        target = parse_snippet_id(snippet_id)

        async with self._transaction("get") as session:
            snippet = (
                await session.execute(build_detail_statement(requester_id, target))
            ).scalar_one_or_none()
            if snippet is None:
                raise NotFoundError()
            return SnippetResponse.model_validate(snippet)

    async def list(
        self,
        requester_id: Optional[str],
        query: SnippetQuery,
    ) -> SnippetListResponse:
        async with self._transaction("list") as session:
            total = (await session.execute(build_count_statement(requester_id, query))).scalar_one()
            rows = (
                await session.execute(build_list_statement(requester_id, query))
            ).scalars().all()
            snippets = [SnippetResponse.model_validate(row) for row in rows]

        logger.debug(
            "Listed %d of %d snippets (view=%s, page=%d, limit=%d)",
            len(snippets),
            total,
            query.view.value,
            query.page,
            query.limit,
        )
        return SnippetListResponse(
            snippets=snippets,
            pagination=PaginationInfo(
                page=query.page,
                limit=query.limit,
                total=total,
                pages=page_count(total, query.limit),
            ),
        )

    async def stats(self, requester_id: Optional[str], view: Any = None) -> StatsResponse:
        """
        Totals plus the ten most used languages and tags.

        Visibility follows the list rules for `view` (default "my"; anonymous
        callers only ever count public snippets). A tag used twice on one
        snippet counts twice.
        """
        visible = visibility_clause(requester_id, parse_view(view) if view is not None else View.MY)

        language_count = func.count(Snippet.id).label("count")
        languages_stmt = (
            select(Snippet.language, language_count)
            .where(visible)
            .group_by(Snippet.language)
            .order_by(language_count.desc(), Snippet.language.asc())
            .limit(STATS_TOP_N)
        )

        tag_count = func.count(SnippetTag.id).label("count")
        tags_stmt = (
            select(SnippetTag.tag, tag_count)
            .join(Snippet, Snippet.id == SnippetTag.snippet_id)
            .where(visible)
            .group_by(SnippetTag.tag)
            .order_by(tag_count.desc(), SnippetTag.tag.asc())
            .limit(STATS_TOP_N)
        )

        async with self._transaction("stats") as session:
            total = (
                await session.execute(select(func.count(Snippet.id)).where(visible))
            ).scalar_one()
            languages = (await session.execute(languages_stmt)).all()
            tags = (await session.execute(tags_stmt)).all()

        return StatsResponse(
            total_snippets=total,
            top_languages=[CountEntry(_id=name, count=count) for name, count in languages],
            top_tags=[CountEntry(_id=name, count=count) for name, count in tags],
        )
