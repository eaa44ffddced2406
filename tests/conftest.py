# tests/conftest.py
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from flashdrop import models  # noqa: F401  registers tables on Base.metadata
from flashdrop.core.config import Settings
from flashdrop.core.utils import utcnow
from flashdrop.database import Base, build_engine, build_sessionmaker
from flashdrop.models.drop import Drop
from flashdrop.models.reservation import Reservation
from flashdrop.services.reservation_service import ReservationService
from tests.mocks.mock_notifier import RecordingNotifier


@pytest.fixture
def settings(tmp_path):
    """Provide test settings"""
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'flashdrop_test.db'}",
        RESERVATION_TTL_SECONDS=60,
        TRANSACTION_TIMEOUT_SECONDS=15,
        EXPIRY_SWEEP_ENABLED=False,
        ADMIN_API_KEY="",
    )


@pytest.fixture(scope="function")
async def test_engine(settings):
    """Create a file-backed SQLite engine with fresh tables for each test."""
    engine = build_engine(settings.DATABASE_URL, connect_args={"timeout": 15})

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_sessionmaker(test_engine)


@pytest.fixture
async def db_session(session_factory):
    """Provide a database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
async def make_service(session_factory, settings, notifier):
    """
    Build ReservationServices, each on its own session so they can run
    concurrently like separate requests.
    """
    sessions = []

    def _make(notifier_override=None, settings_override=None):
        session = session_factory()
        sessions.append(session)
        return ReservationService(
            session,
            notifier_override or notifier,
            settings_override or settings,
        )

    yield _make

    for session in sessions:
        await session.close()


@pytest.fixture
def make_drop(session_factory):
    """Insert a drop that is live right now and return its id."""
    async def _make(
        total_stock: int = 1,
        price: Decimal = Decimal("19.99"),
        name: str = "Test Drop",
        starts_at=None,
        ends_at=None,
    ) -> int:
        now = utcnow()
        async with session_factory() as session:
            drop = Drop(
                name=name,
                price=price,
                total_stock=total_stock,
                starts_at=starts_at or now - timedelta(minutes=1),
                ends_at=ends_at,
                created_at=now,
            )
            session.add(drop)
            await session.commit()
            return drop.id

    return _make


@pytest.fixture
def fetch_reservation(session_factory):
    async def _fetch(reservation_id: int) -> Reservation:
        async with session_factory() as session:
            return await session.get(Reservation, reservation_id)

    return _fetch


@pytest.fixture
def age_reservation(session_factory):
    """Push a hold's expiry into the past without waiting out the TTL."""
    async def _age(reservation_id: int, seconds: int = 1) -> None:
        async with session_factory() as session:
            await session.execute(
                update(Reservation)
                .where(Reservation.id == reservation_id)
                .values(expires_at=utcnow() - timedelta(seconds=seconds))
            )
            await session.commit()

    return _age
