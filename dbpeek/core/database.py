import logging

from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from dbpeek.core.config import get_settings
from dbpeek.core.errors import ConnectionFailure, engine_message

settings = get_settings()
engine = create_async_engine(settings.database_url, pool_pre_ping=True)

# Talk to the DB through async sessions without refreshes after closed conn to avoid errors in async programming
AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)


def connection_target(url) -> dict:
    """Host and database of a connection URL, safe to show to the operator."""
    url = make_url(url)
    return {"host": url.host, "database": url.database}


# One session per request; the connection is opened up front so an unreachable
# server is reported as a connection failure rather than a query error
async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            await session.connection()
        except (DBAPIError, OSError) as error:
            target = connection_target(settings.database_url)
            logging.error(
                f"DB connection failed for {target['host']}/{target['database']}: {error}"
            )
            raise ConnectionFailure(
                target["host"], target["database"], engine_message(error)
            )
        yield session


# Streaming consumers open (and close) their own session inside the stream
def get_sessionmaker() -> async_sessionmaker:
    return AsyncSessionLocal
