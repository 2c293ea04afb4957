"""Pytest fixtures."""

from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings
from app.database import Base, get_session
from app.main import app
from app.services import clock

Headers = dict[str, str]


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    """Reset cached settings around each test.

    Yields
    ------
    None
        Lets environment overrides take effect per test.
    """
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
async def session_factory(
    tmp_path: Path,
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Create a session factory bound to a fresh SQLite file.

    Parameters
    ----------
    tmp_path : Path
        Temporary directory for test database.

    Yields
    ------
    async_sessionmaker[AsyncSession]
        Factory shared by the app override and direct test queries.
    """
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = create_async_engine(database_url, future=True)
    factory = async_sessionmaker(
        engine,
        expire_on_commit=False,
        class_=AsyncSession,
    )
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield factory
    await engine.dispose()


@pytest.fixture()
async def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncClient]:
    """Create a test HTTP client backed by SQLite.

    Parameters
    ----------
    session_factory : async_sessionmaker[AsyncSession]
        Test session factory.

    Yields
    ------
    AsyncClient
        Configured test client.
    """

    async def _override_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://testserver",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
async def admin_headers(client: AsyncClient) -> Headers:
    """Bootstrap an administrator and return its auth headers."""
    response = await client.post(
        "/v1/bootstrap",
        json={
            "first_name": "Ada",
            "last_name": "Admin",
            "email": "admin@university.edu",
        },
    )
    assert response.status_code == 200
    token = response.json()["data"]["token"]["token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_user(
    client: AsyncClient, admin_headers: Headers
) -> Callable[..., Awaitable[tuple[Headers, str]]]:
    """Return a factory that registers users.

    Parameters
    ----------
    client : AsyncClient
        Test HTTP client.
    admin_headers : Headers
        Administrator auth headers.

    Returns
    -------
    Callable[..., Awaitable[tuple[Headers, str]]]
        Coroutine returning the new user's headers and id.
    """
    counter = {"value": 0}

    async def _make(
        role: str = "student", first_name: str = "Sam"
    ) -> tuple[Headers, str]:
        counter["value"] += 1
        response = await client.post(
            "/v1/users",
            headers=admin_headers,
            json={
                "first_name": first_name,
                "last_name": f"User{counter['value']}",
                "email": f"{role}{counter['value']}@university.edu",
                "role": role,
                "department": "Physics",
            },
        )
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        headers = {"Authorization": f"Bearer {data['token']['token']}"}
        return headers, data["user"]["id"]

    return _make


@pytest.fixture()
def make_item(
    client: AsyncClient, admin_headers: Headers
) -> Callable[..., Awaitable[str]]:
    """Return a factory that adds catalog items."""

    async def _make(quantity: int = 5, **fields: Any) -> str:
        payload = {
            "name": "Oscilloscope",
            "category": "Electronics",
            "quantity": quantity,
        }
        payload.update(fields)
        response = await client.post(
            "/v1/inventory", headers=admin_headers, json=payload
        )
        assert response.status_code == 200, response.text
        return response.json()["data"]["id"]

    return _make


@pytest.fixture()
def tomorrow() -> str:
    """Return tomorrow's UTC date in ISO format."""
    return (clock.today() + timedelta(days=1)).isoformat()
