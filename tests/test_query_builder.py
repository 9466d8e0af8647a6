import pytest
from sqlalchemy import text
from sqlalchemy.dialects import sqlite
from sqlalchemy.dialects.mysql import aiomysql as mysql_aiomysql

from dbpeek.core.peek.builder import build_page_query, page_links, total_pages
from dbpeek.core.peek.identifiers import quote_for_text, quote_identifier
from dbpeek.core.schemas import PageRequest, SortDirection


def test_quote_identifier_doubles_backticks():
    assert quote_identifier("users") == "`users`"
    assert quote_identifier("we`ird") == "`we``ird`"
    assert quote_identifier("``") == "``````"


def test_quote_identifier_follows_dialect():
    assert quote_identifier('say "hi"', sqlite.dialect()) == '"say ""hi"""'


def test_quote_for_text_escapes_bind_markers():
    assert quote_for_text("a :b") == "`a \\:b`"


def test_page_query_without_sort():
    req = PageRequest(table="users", page_number=1, page_size=50)
    statement, params = build_page_query(req, {"id", "name"})

    assert statement == "SELECT * FROM `users` LIMIT :limit OFFSET :offset"
    assert params == {"limit": 50, "offset": 0}


def test_page_query_with_valid_sort():
    req = PageRequest(
        table="users", page_number=3, page_size=50, sort_column="name", sort_direction="desc"
    )
    statement, params = build_page_query(req, {"id", "name"})

    assert statement == "SELECT * FROM `users` ORDER BY `name` DESC LIMIT :limit OFFSET :offset"
    assert params == {"limit": 50, "offset": 100}


def test_unknown_sort_column_is_dropped():
    req = PageRequest(table="users", sort_column="name; DROP TABLE users", sort_direction="ASC")
    statement, _ = build_page_query(req, {"id", "name"})

    assert "ORDER BY" not in statement
    assert "DROP" not in statement


def test_table_name_is_quoted_not_interpolated():
    req = PageRequest(table="t` ; DROP TABLE x; --")
    statement, _ = build_page_query(req, set())

    assert statement.startswith("SELECT * FROM `t`` ; DROP TABLE x; --` LIMIT")


def test_direction_only_from_enumeration():
    req = PageRequest(table="t", sort_column="id", sort_direction="DESC; DROP TABLE t")
    statement, _ = build_page_query(req, {"id"})

    assert statement.endswith("ORDER BY `id` ASC LIMIT :limit OFFSET :offset")


@pytest.mark.parametrize(
    "given, expected",
    [(0, 1), (-4, 1), ("7", 7), ("abc", 1), (None, 1)],
)
def test_page_number_is_clamped(given, expected):
    assert PageRequest(table="t", page_number=given).page_number == expected


@pytest.mark.parametrize(
    "given, expected",
    [(0, 1), (501, 500), (500, 500), ("25", 25), ("x", 50)],
)
def test_page_size_is_clamped(given, expected):
    assert PageRequest(table="t", page_size=given).page_size == expected


@pytest.mark.parametrize(
    "rows, size, pages",
    [(0, 50, 1), (1, 50, 1), (50, 50, 1), (51, 50, 2), (101, 50, 3)],
)
def test_total_pages(rows, size, pages):
    assert total_pages(rows, size) == pages


def test_page_links_stay_in_range():
    links = page_links(3, 3)
    assert (links.first, links.prev, links.next, links.last) == (1, 2, 3, 3)

    links = page_links(1, 1)
    assert (links.first, links.prev, links.next, links.last) == (1, 1, 1, 1)

    # A direct request past the end still navigates back into range
    links = page_links(9, 3)
    assert (links.prev, links.next) == (3, 3)


def test_quote_identifier_leaves_percent_alone():
    assert quote_identifier("50%off") == "`50%off`"


def test_percent_in_names_survives_format_style_driver():
    """The driver's own %-formatting restores exactly the original names"""
    dialect = mysql_aiomysql.dialect()
    req = PageRequest(table="50%off", sort_column="rate%", sort_direction="DESC")
    statement, params = build_page_query(req, {"rate%"}, dialect)

    assert statement == "SELECT * FROM `50%off` ORDER BY `rate%` DESC LIMIT :limit OFFSET :offset"

    compiled = text(statement).compile(dialect=dialect)
    sent = compiled.string % tuple(params[name] for name in compiled.positiontup)
    assert sent == "SELECT * FROM `50%off` ORDER BY `rate%` DESC LIMIT 50 OFFSET 0"


def test_sort_direction_enum_member_is_kept():
    req = PageRequest(table="t", sort_direction=SortDirection.DESC)
    assert req.sort_direction is SortDirection.DESC

    again = PageRequest.model_validate(req.model_dump())
    assert again.sort_direction is SortDirection.DESC
