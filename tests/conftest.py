"""
Shared fixtures: a temporary SQLite database per test, a resolver whose
public-IP probe is served by httpx.MockTransport, and an API client running
the app in-process through ASGITransport.
"""

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from link_tracker.db.session import get_session
from link_tracker.db.sqlite_adapter import SQLiteAdapter
from link_tracker.main import app
from link_tracker.services.ip_resolver import IPResolver, PublicAddressCache, get_ip_resolver

PUBLIC_IP = "198.51.100.7"
CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def public_ip_transport(body: str = f"{PUBLIC_IP}\n", status_code: int = 200) -> httpx.MockTransport:
    """Transport answering every public-IP probe with the same body."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, text=body)
    return httpx.MockTransport(handler)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = SQLiteAdapter().create_engine(f"sqlite+aiosqlite:///{tmp_path / 'tracker.db'}")
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(
        engine,
        class_=SQLModelAsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def resolver():
    return IPResolver(
        cache=PublicAddressCache(),
        services=["https://ip.example.test"],
        timeout=1.0,
        transport=public_ip_transport(),
    )


@pytest_asyncio.fixture
async def client(session_maker, resolver):
    async def override_get_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_ip_resolver] = lambda: resolver

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()
