"""
SnipVault Backend — Query Builder Unit Tests
==============================================

What:  Parameter parsing, visibility resolution and filter composition.
How:   Pure functions; SQL shape is checked on the compiled expression text.
       Behaviour against real rows is covered in test_snippet_service.py.
"""

import pytest

from app.services.query_builder import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    MAX_PAGE,
    SnippetQuery,
    SortOrder,
    View,
    _escape_like,
    build_filter,
    effective_view,
    order_by_clauses,
    page_count,
    parse_limit,
    parse_page,
    parse_sort_by,
    parse_tags,
    parse_view,
    visibility_clause,
)


class TestParameterParsing:
    """Permissive parsing: bad values fall back, never fail."""

    @pytest.mark.parametrize("raw,expected", [
        ("0", 1),
        ("1000", MAX_LIMIT),
        ("-3", 1),
        ("7", 7),
        (None, DEFAULT_LIMIT),
        ("abc", DEFAULT_LIMIT),
        ("12abc", DEFAULT_LIMIT),
        (" 5 ", 5),
    ])
    def test_limit_clamps(self, raw, expected):
        assert parse_limit(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("-5", 1), ("0", 1), ("3", 3), (None, 1), ("x", 1),
        ("99999999999999999999", MAX_PAGE),
    ])
    def test_page_floor(self, raw, expected):
        assert parse_page(raw) == expected

    def test_unknown_view_defaults_to_my(self):
        assert parse_view("everything") is View.MY
        assert parse_view(None) is View.MY
        assert parse_view("PUBLIC") is View.PUBLIC

    def test_sort_by_whitelist(self):
        assert parse_sort_by("title") == "title"
        assert parse_sort_by("code") == "createdAt"
        assert parse_sort_by("owner_id; DROP TABLE snippets") == "createdAt"

    def test_tags_are_split_lowered_and_deduped(self):
        assert parse_tags("Async, util,,UTIL ,") == ("async", "util")
        assert parse_tags(None) == ()
        assert parse_tags(" , ") == ()

    def test_from_params_normalizes_everything(self):
        query = SnippetQuery.from_params(
            view="all",
            search="  ",
            language=" Python ",
            tags="A,b",
            page="2",
            limit="10",
            sort_by="title",
            sort_order="ASC",
        )
        assert query.view is View.ALL
        assert query.search is None
        assert query.language == "python"
        assert query.tags == ("a", "b")
        assert (query.page, query.limit, query.offset) == (2, 10, 10)
        assert query.sort_by == "title"
        assert query.sort_order is SortOrder.ASC

    def test_defaults(self):
        query = SnippetQuery.from_params()
        assert query == SnippetQuery()
        assert query.offset == 0
        assert query.sort_order is SortOrder.DESC


class TestVisibility:
    """Who can see what."""

    @pytest.mark.parametrize("view", list(View))
    def test_anonymous_is_always_public(self, view):
        assert effective_view(None, view) is View.PUBLIC
        sql = str(visibility_clause(None, view))
        assert "is_public" in sql
        assert "owner_id" not in sql

    def test_my_is_owner_only(self):
        sql = str(visibility_clause("u1", View.MY))
        assert "owner_id" in sql
        assert "is_public" not in sql

    def test_all_is_owner_or_public(self):
        sql = str(visibility_clause("u1", View.ALL))
        assert "owner_id" in sql and "is_public" in sql and " OR " in sql

    def test_search_or_is_grouped_under_visibility_and(self):
        clause = build_filter("u1", SnippetQuery(view=View.MY, search="foo"))
        sql = str(clause)
        # visibility comes first and the search OR is parenthesised after AND
        assert sql.startswith("snippets.owner_id")
        assert " AND (" in sql
        assert sql.rstrip().endswith(")")

    def test_all_filters_compose_with_and(self):
        clause = build_filter(
            "u1",
            SnippetQuery(view=View.ALL, search="x", language="go", tags=("web",)),
        )
        sql = str(clause)
        assert sql.count(" AND ") >= 3
        assert "EXISTS" in sql
        assert "snippets.language" in sql


class TestHelpers:

    def test_escape_like_wildcards(self):
        assert _escape_like("50%_off\\") == "50\\%\\_off\\\\"

    def test_order_by_has_id_tiebreak(self):
        primary, tiebreak = order_by_clauses(SnippetQuery(sort_by="title", sort_order=SortOrder.ASC))
        assert "title ASC" in str(primary)
        assert "snippets.id ASC" in str(tiebreak)

    @pytest.mark.parametrize("total,limit,expected", [(0, 20, 0), (5, 2, 3), (4, 2, 2), (1, 50, 1)])
    def test_page_count(self, total, limit, expected):
        assert page_count(total, limit) == expected

    def test_max_page_offset_fits_32_bits(self):
        query = SnippetQuery.from_params(page="99999999999999999999", limit="50")
        assert query.page == MAX_PAGE
        assert query.offset < 2**31
