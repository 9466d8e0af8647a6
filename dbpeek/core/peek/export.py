import csv
import io
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import async_sessionmaker

from dbpeek.core.peek.builder import cell_value
from dbpeek.core.peek.identifiers import quote_for_text


def export_filename(table: str) -> str:
    base = table.replace("/", "_").replace("\\", "_").replace('"', "")
    return f"{base}-export.csv"


async def stream_csv(session_factory: async_sessionmaker, table: str) -> AsyncIterator[bytes]:
    """
    Yield a whole table as CSV, one chunk per row, from a single forward cursor.

    The header comes from the keys of the first record; an empty table yields
    nothing at all. The session lives exactly as long as the stream.
    """
    async with session_factory() as session:
        connection = await session.connection()
        statement = text(f"SELECT * FROM {quote_for_text(table, connection.dialect)}")
        result = await connection.stream(statement)

        output = io.StringIO()
        writer = csv.writer(output, lineterminator="\n")
        header_written = False

        async for row in result.mappings():
            if not header_written:
                writer.writerow(list(row.keys()))
                header_written = True
            writer.writerow([cell_value(value) for value in row.values()])

            yield output.getvalue().encode("utf-8")
            output.seek(0)
            output.truncate(0)
