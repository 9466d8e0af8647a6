import os
import tempfile

# The app reads its settings on import, so the test environment goes first
TEST_DB_PATH = os.path.join(tempfile.mkdtemp(prefix="dbpeek-"), "dbpeek_test.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["APP_USER"] = "operator"
os.environ["APP_PASS"] = "s3cret-pass"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256-signing"
os.environ["ALLOW_WRITE"] = ""
os.environ["ALLOW_IPS"] = ""
os.environ["ACCESS_TOKEN"] = ""

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from dbpeek.main import app
from dbpeek.core.config import AccessPolicy, get_policy
from dbpeek.core.database import get_db, get_sessionmaker
from dbpeek.core.security import CSRF_HEADER

# NullPool: every test runs on its own event loop, so no connection is reused
test_engine = create_async_engine(os.environ["DATABASE_URL"], poolclass=NullPool)
TestingSessionLocal = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)

SCHEMA = [
    "DROP TABLE IF EXISTS numbers",
    "DROP TABLE IF EXISTS people",
    "DROP TABLE IF EXISTS pairs",
    "DROP TABLE IF EXISTS empty_things",
    'DROP TABLE IF EXISTS "odd""name: t"',
    "CREATE TABLE numbers (n INTEGER NOT NULL, label TEXT)",
    "CREATE TABLE people ("
    " id INTEGER PRIMARY KEY,"
    " name VARCHAR(50) NOT NULL,"
    " age INTEGER,"
    " nickname TEXT DEFAULT 'none')",
    "CREATE INDEX ix_people_age ON people (age)",
    "CREATE TABLE pairs (id INTEGER, name TEXT)",
    "CREATE TABLE empty_things (id INTEGER, note TEXT)",
]


# Fresh tables and rows for every test
@pytest_asyncio.fixture(scope="function", autouse=True)
async def seeded_db():
    async with test_engine.begin() as conn:
        for statement in SCHEMA:
            await conn.execute(text(statement))
        await conn.execute(
            text("INSERT INTO numbers (n, label) VALUES (:n, :label)"),
            [{"n": n, "label": f"row {n}"} for n in range(1, 102)],
        )
        await conn.execute(
            text("INSERT INTO people (id, name, age) VALUES (:id, :name, :age)"),
            [
                {"id": 1, "name": "Ada", "age": 36},
                {"id": 2, "name": "Grace", "age": None},
            ],
        )
        await conn.execute(text("INSERT INTO pairs (id, name) VALUES (1, 'a')"))
    yield


@pytest_asyncio.fixture(scope="function")
async def db_session():
    async with TestingSessionLocal() as session:
        yield session
        await session.rollback()
        await session.close()


# Records every time a route asks for a database session
# Engine behind every test session, for tests that listen to its cursor events
@pytest_asyncio.fixture(scope="function")
async def engine():
    return test_engine


@pytest_asyncio.fixture(scope="function")
async def db_calls():
    return []


@pytest_asyncio.fixture(scope="function")
async def policy():
    return AccessPolicy(rows_per_page=50)


# Client
@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, db_calls, policy):
    async def override_get_db():
        db_calls.append(True)
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sessionmaker] = lambda: TestingSessionLocal
    app.dependency_overrides[get_policy] = lambda: policy

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def _sign_in(client: AsyncClient, username="operator", password="s3cret-pass"):
    csrf = (await client.get("/auth/csrf")).json()["csrf_token"]
    return await client.post(
        "/auth/login",
        json={"username": username, "password": password},
        headers={CSRF_HEADER: csrf},
    )


# Login helper for tests that need to drive the auth flow themselves
@pytest_asyncio.fixture(scope="function")
async def sign_in():
    return _sign_in


# Signed-in client; the fixture value is the session's CSRF token
@pytest_asyncio.fixture(scope="function")
async def csrf_token(client: AsyncClient):
    response = await _sign_in(client)
    assert response.status_code == 200
    return response.json()["csrf_token"]
