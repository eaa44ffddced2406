import asyncio

import pytest

from flashdrop.schemas.reservation import ReserveOutcome
from flashdrop.services.conflicts import CONFLICT_MESSAGE, conflict_outcome
from flashdrop.services.reservation_service import ReservationService
from scripts import load_test_drop


@pytest.fixture
def script_db(session_factory, settings, mocker):
    mocker.patch.object(load_test_drop, "async_session", session_factory)
    mocker.patch.object(load_test_drop, "get_settings", return_value=settings)


@pytest.mark.asyncio
async def test_buyers_never_oversell(script_db, make_drop):
    drop_id = await make_drop(total_stock=3)

    results = await asyncio.gather(
        *(load_test_drop.buy(drop_id, f"load_{i}", attempts=3) for i in range(8))
    )

    assert results.count("PURCHASED") == 3
    assert results.count("OUT_OF_STOCK") == 5


@pytest.mark.asyncio
async def test_buyer_retries_concurrent_update(script_db, make_drop, mocker):
    drop_id = await make_drop(total_stock=1)
    real_reserve = ReservationService.reserve
    calls = []

    async def flaky_reserve(self, drop_id, username):
        calls.append(username)
        if len(calls) == 1:
            return conflict_outcome(ReserveOutcome, CONFLICT_MESSAGE)
        return await real_reserve(self, drop_id, username)

    mocker.patch.object(ReservationService, "reserve", flaky_reserve)

    assert await load_test_drop.buy(drop_id, "alice", attempts=3) == "PURCHASED"
    assert calls == ["alice", "alice"]
