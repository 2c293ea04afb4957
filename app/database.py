"""Database primitives."""

from collections.abc import AsyncGenerator

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import get_settings


class Base(DeclarativeBase):
    """Base declarative model class."""

    metadata = MetaData()


settings = get_settings()
engine = create_async_engine(settings.database_url, future=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session.

    The session is closed when the request finishes; anything not committed
    by then is rolled back.

    Yields
    ------
    AsyncSession
        Active async SQLAlchemy session.
    """
    async with SessionLocal() as session:
        yield session
