from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dbpeek.core import schemas
from dbpeek.core.database import get_db
from dbpeek.core.peek.executor import run_query
from dbpeek.core.security import policy_dep, require_login, verify_csrf

# Login and CSRF are both settled before the database session is opened
router = APIRouter(
    prefix="/query",
    tags=["Query"],
    dependencies=[Depends(require_login), Depends(verify_csrf)],
)

db_dep = Annotated[AsyncSession, Depends(get_db)]


@router.post("", response_model=schemas.QueryOutcome)
async def submit_query(payload: schemas.QueryRequest, db: db_dep, policy: policy_dep):
    """
    Run one statement. Refusals and engine errors are reported in the body
    (status "failure"), not as HTTP errors.
    """
    return await run_query(db, payload.sql, policy)
