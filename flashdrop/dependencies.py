from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from flashdrop.database import async_session
from flashdrop.services.notifier import ChangeNotifier, NullNotifier


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    session_factory = getattr(request.app.state, "session_factory", None) or async_session
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_notifier(request: Request) -> ChangeNotifier:
    """The notifier built by the app lifespan, or a no-op before startup."""
    return getattr(request.app.state, "notifier", None) or NullNotifier()
