import asyncio
import logging
import time
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dbpeek.core.config import AccessPolicy
from dbpeek.core.errors import PolicyViolation, engine_message
from dbpeek.core.peek.builder import materialize
from dbpeek.core.peek.classifier import is_read_only, single_statement
from dbpeek.core.schemas import QueryFailure, QueryOutcome, QuerySuccess

WRITE_DISABLED = "write queries disabled (set ALLOW_WRITE=1 to enable)"


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


async def run_query(
    db: AsyncSession,
    sql_text: str,
    policy: AccessPolicy,
    timeout: Optional[float] = None,
) -> QueryOutcome:
    """
    Run one operator-supplied statement under the access policy.

    Never raises for query problems: refusals, engine errors and timeouts all
    come back as QueryFailure. Only the execution and fetch are timed.

    Args:
        db: Request-scoped session.
        sql_text: Free-form SQL, exactly one statement.
        policy: Access policy snapshot; allow_write gates non-SELECT text.
        timeout: Seconds to wait for the database, defaults to the policy's.

    Returns:
        QuerySuccess with the materialized rows, or QueryFailure with a reason.
    """
    if not sql_text or not sql_text.strip():
        return QuerySuccess(elapsed_ms=0)

    if not policy.allow_write and not is_read_only(sql_text):
        return QueryFailure(reason=WRITE_DISABLED)

    try:
        statement = single_statement(sql_text)
    except PolicyViolation as violation:
        return QueryFailure(reason=violation.message)

    if timeout is None:
        timeout = policy.query_timeout_seconds

    connection = await db.connection()
    start = time.perf_counter()
    try:
        # Driver-level execution with no parameter collection at all: the text is
        # neither scanned for :binds nor %-formatted by format-style drivers
        execution = connection.exec_driver_sql(
            statement, execution_options={"no_parameters": True}
        )
        result = await asyncio.wait_for(execution, timeout)
        if result.returns_rows:
            row_set = materialize(result.keys(), result.mappings().all())
        else:
            row_set = materialize([], [])
        elapsed = _elapsed_ms(start)

        if policy.allow_write:
            await db.commit()
    except asyncio.TimeoutError:
        elapsed = _elapsed_ms(start)
        logging.warning(f"Ad-hoc query cancelled after {timeout}s")
        # The driver connection is mid-statement, never hand it back to the pool
        await connection.invalidate()
        await db.rollback()
        return QueryFailure(reason=f"query timed out after {timeout:g}s", elapsed_ms=elapsed)
    except SQLAlchemyError as error:
        elapsed = _elapsed_ms(start)
        logging.info(f"Ad-hoc query failed: {engine_message(error)}")
        await db.rollback()
        return QueryFailure(reason=engine_message(error), elapsed_ms=elapsed)

    return QuerySuccess(columns=row_set.columns, rows=row_set.rows, elapsed_ms=elapsed)
