"""
SnipVault Backend — Snippet Query Builder
===========================================

What:  Turns a caller identity plus list parameters (view, search, language,
       tags, page, limit, sortBy, sortOrder) into one SQLAlchemy filter, one
       ORDER BY and one page window.
Why:   This is the only place that decides which snippets a caller may see.
       Every read path (list, detail, stats) builds its WHERE clause here.
How:   Pure functions over SQLAlchemy expressions; nothing here touches the
       database. SnippetService executes what this module builds.

Visibility (resolved first, always a top-level AND term):

    requester    view      predicate
    ─────────    ──────    ─────────────────────────────────────
    none         any       is_public
    present      public    is_public
    present      all       owner_id = requester OR is_public
    present      my/other  owner_id = requester

Filter composition:

    visibility
      AND (title ILIKE %s% OR description ILIKE %s%)     -- if search
      AND language = :language                           -- if language
      AND EXISTS (tag IN :tags)                          -- if tags

    The search OR is built as its own grouped clause and joined with and_(),
    so it can never sit beside the visibility OR at the same level and widen
    what the caller sees.

Parameter parsing is permissive: unknown enum values, non-numeric page/limit
and out-of-range limits fall back to defaults or clamp. Mutation bodies are
validated strictly elsewhere (schemas/snippet.py).
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple

from sqlalchemy import Select, and_, false, func, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from app.models.snippet import Snippet, SnippetTag

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 50
MIN_LIMIT = 1
# Keeps (page - 1) * limit inside a signed 32-bit OFFSET
MAX_PAGE = 2**31 // MAX_LIMIT


class View(str, Enum):
    MY = "my"
    PUBLIC = "public"
    ALL = "all"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


# API field name → mapped column
SORT_COLUMNS = {
    "createdAt": Snippet.created_at,
    "updatedAt": Snippet.updated_at,
    "title": Snippet.title,
    "language": Snippet.language,
}
DEFAULT_SORT_BY = "createdAt"


# ══════════════════════════════════════════════════════════════════════════
# Permissive parameter parsing
# ══════════════════════════════════════════════════════════════════════════


def _as_int(raw: Any) -> Optional[int]:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def parse_view(raw: Any) -> View:
    try:
        return View(str(raw).strip().lower())
    except ValueError:
        return View.MY


def parse_page(raw: Any) -> int:
    """1-based page; non-numeric or below 1 becomes 1, huge values clamp to MAX_PAGE."""
    value = _as_int(raw)
    if value is None or value < 1:
        return DEFAULT_PAGE
    return min(value, MAX_PAGE)


def parse_limit(raw: Any) -> int:
    """Page size clamped to [1, 50]; non-numeric or missing becomes 20."""
    value = _as_int(raw)
    if value is None:
        return DEFAULT_LIMIT
    return max(MIN_LIMIT, min(MAX_LIMIT, value))


def parse_sort_by(raw: Any) -> str:
    if isinstance(raw, str) and raw.strip() in SORT_COLUMNS:
        return raw.strip()
    return DEFAULT_SORT_BY


def parse_sort_order(raw: Any) -> SortOrder:
    try:
        return SortOrder(str(raw).strip().lower())
    except ValueError:
        return SortOrder.DESC


def parse_text(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


def parse_tags(raw: Any) -> Tuple[str, ...]:
    """
    "Async, util,,UTIL" → ("async", "util")

    Tokens are trimmed and lower-cased; empty tokens are dropped; the result
    is a set (kept in first-seen order so generated SQL is stable).
    """
    if raw is None:
        return ()
    tokens = []
    for token in str(raw).split(","):
        token = token.strip().lower()
        if token and token not in tokens:
            tokens.append(token)
    return tuple(tokens)


@dataclass(frozen=True)
class SnippetQuery:
    """
    Normalized list parameters. Build with `from_params` from raw request values.

    Every field holds a value that is already valid; nothing downstream needs
    to re-check ranges or enum membership.
    """

    view: View = View.MY
    search: Optional[str] = None
    language: Optional[str] = None
    tags: Tuple[str, ...] = field(default_factory=tuple)
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    sort_by: str = DEFAULT_SORT_BY
    sort_order: SortOrder = SortOrder.DESC

    @classmethod
    def from_params(
        cls,
        *,
        view: Any = None,
        search: Any = None,
        language: Any = None,
        tags: Any = None,
        page: Any = None,
        limit: Any = None,
        sort_by: Any = None,
        sort_order: Any = None,
    ) -> "SnippetQuery":
        parsed_language = parse_text(language)
        return cls(
            view=parse_view(view),
            search=parse_text(search),
            language=parsed_language.lower() if parsed_language else None,
            tags=parse_tags(tags),
            page=parse_page(page),
            limit=parse_limit(limit),
            sort_by=parse_sort_by(sort_by),
            sort_order=parse_sort_order(sort_order),
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


# ══════════════════════════════════════════════════════════════════════════
# Visibility
# ══════════════════════════════════════════════════════════════════════════


def effective_view(requester_id: Optional[str], view: View) -> View:
    """Without an identity only the public view exists."""
    if not requester_id:
        return View.PUBLIC
    return view


def visibility_clause(requester_id: Optional[str], view: View) -> ColumnElement[bool]:
    view = effective_view(requester_id, view)
    if view is View.PUBLIC:
        return Snippet.is_public.is_(true())
    if view is View.ALL:
        return or_(Snippet.owner_id == requester_id, Snippet.is_public.is_(true()))
    return Snippet.owner_id == requester_id


# ══════════════════════════════════════════════════════════════════════════
# User-supplied filters
# ══════════════════════════════════════════════════════════════════════════


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_clause(text: str) -> ColumnElement[bool]:
    """Case-insensitive substring match on title OR description."""
    pattern = f"%{_escape_like(text)}%"
    return or_(
        Snippet.title.ilike(pattern, escape="\\"),
        Snippet.description.ilike(pattern, escape="\\"),
    ).self_group()


def tags_clause(tags: Tuple[str, ...]) -> ColumnElement[bool]:
    """True when the snippet carries at least one of `tags`."""
    if not tags:
        return false()
    return Snippet.tag_entries.any(SnippetTag.tag.in_(tags))


def build_filter(requester_id: Optional[str], query: SnippetQuery) -> ColumnElement[bool]:
    """The complete WHERE clause: visibility AND every supplied filter."""
    terms = [visibility_clause(requester_id, query.view)]
    if query.search:
        terms.append(search_clause(query.search))
    if query.language:
        terms.append(Snippet.language == query.language)
    if query.tags:
        terms.append(tags_clause(query.tags))
    return and_(*terms)


# ══════════════════════════════════════════════════════════════════════════
# Statements
# ══════════════════════════════════════════════════════════════════════════


def order_by_clauses(query: SnippetQuery) -> tuple:
    column = SORT_COLUMNS[query.sort_by]
    primary = column.asc() if query.sort_order is SortOrder.ASC else column.desc()
    # id breaks ties so pages never overlap or skip rows
    return primary, Snippet.id.asc()


def build_list_statement(requester_id: Optional[str], query: SnippetQuery) -> Select:
    return (
        select(Snippet)
        .where(build_filter(requester_id, query))
        .order_by(*order_by_clauses(query))
        .offset(query.offset)
        .limit(query.limit)
    )


def build_count_statement(requester_id: Optional[str], query: SnippetQuery) -> Select:
    return select(func.count(Snippet.id)).where(build_filter(requester_id, query))


def build_detail_statement(requester_id: Optional[str], snippet_id: Any) -> Select:
    """One snippet by id, restricted to what the caller may see."""
    return select(Snippet).where(
        and_(
            visibility_clause(requester_id, View.ALL),
            Snippet.id == snippet_id,
        )
    )


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
