# flashdrop/database.py

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from flashdrop.core.config import get_settings

settings = get_settings()

Base = declarative_base()


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Pool sizing only applies to server databases; SQLite files get the
    dialect's default pool.
    """
    options = {"echo": False, "future": True}
    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=1800,
        )
    options.update(kwargs)
    return create_async_engine(database_url, **options)


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False
    )


engine = build_engine(settings.async_database_url)

async_session = build_sessionmaker(engine)

