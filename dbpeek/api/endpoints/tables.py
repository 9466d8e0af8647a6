from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dbpeek.core import schemas
from dbpeek.core.database import get_db, get_sessionmaker
from dbpeek.core.errors import NotFound
from dbpeek.core.peek import builder, metadata
from dbpeek.core.peek.export import export_filename, stream_csv
from dbpeek.core.peek.identifiers import quote_identifier
from dbpeek.core.security import policy_dep, require_login, settings_dep

router = APIRouter(
    prefix="/tables", tags=["Tables"], dependencies=[Depends(require_login)]
)

db_dep = Annotated[AsyncSession, Depends(get_db)]


async def existing_table(db: AsyncSession, table: str) -> str:
    """A table name straight from the request is only usable once the catalog knows it."""
    if table not in await metadata.list_tables(db):
        raise NotFound(f"Table '{table}' not found")
    return table


@router.get("", response_model=schemas.TablesResponse)
async def list_tables(db: db_dep, settings: settings_dep, policy: policy_dep):
    """All tables with best-effort row counts, plus what we are connected to."""
    url = make_url(settings.database_url)
    names = await metadata.list_tables(db)

    tables = []
    for name in names:
        tables.append(schemas.TableSummary(name=name, rows=await metadata.count_rows(db, name)))

    connection = schemas.ConnectionInfo(
        driver=url.get_backend_name(),
        host=url.host,
        database=url.database,
        mode="read/write" if policy.allow_write else "read-only",
    )
    return {"connection": connection, "tables": tables, "total": len(tables)}


@router.get("/{table}/schema", response_model=schemas.SchemaResponse)
async def describe_table(table: str, db: db_dep):
    table = await existing_table(db, table)
    return {"table": table, "columns": await metadata.list_columns(db, table)}


@router.get("/{table}/rows", response_model=schemas.BrowseResponse)
async def browse_table(
    table: str,
    db: db_dep,
    policy: policy_dep,
    p: Annotated[str, Query(description="Page number, from 1")] = "1",
    per: Annotated[Optional[str], Query(description="Rows per page, 1-500")] = None,
    o: Annotated[Optional[str], Query(description="Sort column")] = None,
    d: Annotated[str, Query(description="ASC or DESC")] = "ASC",
):
    """
    One page of rows.
    Bad numbers are clamped and an unknown sort column is ignored, never an error.
    """
    table = await existing_table(db, table)
    columns = [column.name for column in await metadata.list_columns(db, table)]

    req = schemas.PageRequest(
        table=table,
        page_number=p,
        page_size=per if per else policy.rows_per_page,
        sort_column=o,
        sort_direction=d,
    )
    row_set = await builder.fetch_page(db, req, columns)

    total = await metadata.count_rows(db, table) or 0
    pages = builder.total_pages(total, req.page_size)
    connection = await db.connection()

    return schemas.BrowseResponse(
        table=table,
        columns=row_set.columns or columns,
        rows=row_set.rows,
        page=req.page_number,
        per_page=req.page_size,
        total_rows=total,
        total_pages=pages,
        sort_column=req.sort_column if req.sort_column in columns else None,
        sort_direction=req.sort_direction,
        links=builder.page_links(req.page_number, pages),
        query_prefill=f"SELECT * FROM {quote_identifier(table, connection.dialect)} LIMIT 100;",
    )


@router.get("/{table}/csv")
async def export_csv(
    table: str,
    db: db_dep,
    session_factory: Annotated[async_sessionmaker, Depends(get_sessionmaker)],
):
    table = await existing_table(db, table)
    # Hand the checking connection back; the stream holds the only one from here on
    await db.close()
    return StreamingResponse(
        stream_csv(session_factory, table),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{export_filename(table)}"'
        },
    )
