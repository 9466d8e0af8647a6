import math
from typing import Any, Collection, Dict, Iterable, Mapping, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.asyncio import AsyncSession

from dbpeek.core.peek.identifiers import quote_for_text
from dbpeek.core.schemas import PageLinks, PageRequest, RowSet


def cell_value(value: Any) -> Any:
    """Make a fetched value presentable; binary data is decoded leniently."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return value


def materialize(columns: Iterable[str], rows: Iterable[Mapping[str, Any]]) -> RowSet:
    return RowSet(
        columns=list(columns),
        rows=[{key: cell_value(value) for key, value in row.items()} for row in rows],
    )


def build_page_query(
    req: PageRequest, valid_columns: Collection[str], dialect: Optional[Dialect] = None
) -> Tuple[str, Dict[str, int]]:
    """
    Compose the row-fetch statement for one page of a table.

    The table and sort column are quoted identifiers; the sort column is only
    used when it is one of valid_columns, otherwise ORDER BY is left out.
    LIMIT and OFFSET are always bound, never formatted into the text.

    Returns:
        (statement text for sqlalchemy.text(), bind parameters)

    Example:
        build_page_query(PageRequest(table="users", page_number=3, page_size=50,
                                     sort_column="id", sort_direction="DESC"), {"id"})
        -> ("SELECT * FROM `users` ORDER BY `id` DESC LIMIT :limit OFFSET :offset",
            {"limit": 50, "offset": 100})
    """
    statement = f"SELECT * FROM {quote_for_text(req.table, dialect)}"

    if req.sort_column is not None and req.sort_column in valid_columns:
        statement += (
            f" ORDER BY {quote_for_text(req.sort_column, dialect)} {req.sort_direction.value}"
        )

    statement += " LIMIT :limit OFFSET :offset"
    return statement, {"limit": req.page_size, "offset": req.offset}


def total_pages(total_rows: int, page_size: int) -> int:
    return max(1, math.ceil(total_rows / page_size))


def page_links(page: int, pages: int) -> PageLinks:
    """Navigation targets; they never point past the last page."""
    return PageLinks(
        first=1,
        prev=max(1, min(pages, page - 1)),
        next=min(pages, page + 1),
        last=pages,
    )


async def fetch_page(
    db: AsyncSession, req: PageRequest, valid_columns: Collection[str]
) -> RowSet:
    # A page past the end is still executed and simply comes back empty
    connection = await db.connection()
    statement, params = build_page_query(req, valid_columns, connection.dialect)
    result = await db.execute(text(statement), params)
    return materialize(result.keys(), result.mappings().all())
