import logging
from typing import Any, List, Optional

from sqlalchemy import inspect, text
from sqlalchemy.exc import CompileError, NoSuchTableError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dbpeek.core.errors import EngineError, NotFound, engine_message
from dbpeek.core.peek.identifiers import quote_for_text
from dbpeek.core.schemas import ColumnDescriptor, KeyKind


def _table_names(connection: Any) -> List[str]:
    inspector = inspect(connection)
    # Views are listed after tables, as SHOW FULL TABLES would
    return inspector.get_table_names() + inspector.get_view_names()


def _type_name(column_type: Any, dialect: Any) -> str:
    try:
        return column_type.compile(dialect=dialect)
    except CompileError:
        # Untyped columns (NullType) have no DDL form
        return ""


def _key_kind(name: str, primary: List[str], unique: List[List[str]], indexed: List[List[str]]) -> KeyKind:
    if name in primary:
        return KeyKind.PRIMARY
    if any(columns and columns[0] == name for columns in unique):
        return KeyKind.UNIQUE
    if any(columns and columns[0] == name for columns in indexed):
        return KeyKind.INDEX
    return KeyKind.NONE


def _describe(connection: Any, table: str) -> List[ColumnDescriptor]:
    inspector = inspect(connection)
    columns = inspector.get_columns(table)

    primary = (inspector.get_pk_constraint(table) or {}).get("constrained_columns") or []
    unique = [c.get("column_names") or [] for c in inspector.get_unique_constraints(table)]
    indexed = []
    for index in inspector.get_indexes(table):
        names = index.get("column_names") or []
        (unique if index.get("unique") else indexed).append(names)

    descriptors = []
    for column in columns:
        default = column.get("default")
        descriptors.append(
            ColumnDescriptor(
                name=column["name"],
                type=_type_name(column["type"], connection.dialect),
                nullable=bool(column.get("nullable", True)),
                key_kind=_key_kind(column["name"], primary, unique, indexed),
                default_value=None if default is None else str(default),
                extra="auto_increment" if column.get("autoincrement") is True else "",
            )
        )
    return descriptors


async def list_tables(db: AsyncSession) -> List[str]:
    """Tables (then views) in the order the catalog lists them."""
    connection = await db.connection()
    return await connection.run_sync(_table_names)


async def list_columns(db: AsyncSession, table: str) -> List[ColumnDescriptor]:
    """
    Describe every column of a table.

    Raises:
        NotFound: the table does not exist.
        EngineError: the catalog could not be read.
    """
    connection = await db.connection()
    try:
        return await connection.run_sync(_describe, table)
    except NoSuchTableError:
        raise NotFound(f"Table '{table}' not found")
    except SQLAlchemyError as error:
        raise EngineError(engine_message(error))


async def count_rows(db: AsyncSession, table: str) -> Optional[int]:
    """
    Row count of a table, or None when it could not be taken.
    Counts are advisory: a failure never aborts the caller.
    """
    connection = await db.connection()
    statement = text(f"SELECT COUNT(*) FROM {quote_for_text(table, connection.dialect)}")
    try:
        result = await db.execute(statement)
        return int(result.scalar() or 0)
    except SQLAlchemyError as error:
        logging.warning(f"Row count for {table!r} failed: {engine_message(error)}")
        await db.rollback()
        return None
