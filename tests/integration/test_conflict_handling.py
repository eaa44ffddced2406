import asyncio

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from flashdrop.core.enums import ErrorCode
from flashdrop.core.exceptions import DatabaseError
from flashdrop.services.conflicts import BUSY_MESSAGE, CONFLICT_MESSAGE


class FakePgError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


@pytest.mark.asyncio
async def test_deadlock_becomes_concurrent_update(make_service, make_drop, mocker):
    drop_id = await make_drop()
    service = make_service()
    mocker.patch.object(
        service,
        "_reserve_in_transaction",
        side_effect=OperationalError("SELECT ...", {}, FakePgError("40P01")),
    )

    outcome = await service.reserve(drop_id, "alice")

    assert outcome.success is False
    assert outcome.error == ErrorCode.CONCURRENT_UPDATE
    assert outcome.message == CONFLICT_MESSAGE
    assert outcome.reservation is None


@pytest.mark.asyncio
async def test_lock_timeout_on_purchase_becomes_concurrent_update(make_service, mocker):
    service = make_service()
    mocker.patch.object(
        service,
        "_purchase_in_transaction",
        side_effect=OperationalError("SELECT ...", {}, FakePgError("55P03")),
    )

    outcome = await service.purchase(1, "alice")

    assert outcome.error == ErrorCode.CONCURRENT_UPDATE
    assert outcome.message == CONFLICT_MESSAGE
    assert outcome.purchase is None


@pytest.mark.asyncio
async def test_sqlite_busy_becomes_server_busy(make_service, make_drop, mocker):
    drop_id = await make_drop()
    service = make_service()
    mocker.patch.object(
        service,
        "_reserve_in_transaction",
        side_effect=OperationalError("INSERT ...", {}, Exception("database is locked")),
    )

    outcome = await service.reserve(drop_id, "alice")

    assert outcome.error == ErrorCode.CONCURRENT_UPDATE
    assert outcome.message == BUSY_MESSAGE


@pytest.mark.asyncio
async def test_transaction_budget_exceeded_becomes_server_busy(make_service, make_drop, settings, mocker):
    drop_id = await make_drop()
    fast_settings = settings.model_copy(update={"TRANSACTION_TIMEOUT_SECONDS": 0.05})
    service = make_service(settings_override=fast_settings)

    async def stall(*args):
        await asyncio.sleep(1)

    mocker.patch.object(service, "_reserve_in_transaction", side_effect=stall)

    outcome = await service.reserve(drop_id, "alice")

    assert outcome.error == ErrorCode.CONCURRENT_UPDATE
    assert outcome.message == BUSY_MESSAGE


@pytest.mark.asyncio
async def test_unclassified_database_error_is_raised(make_service, make_drop, mocker):
    drop_id = await make_drop()
    service = make_service()
    mocker.patch.object(
        service,
        "_reserve_in_transaction",
        side_effect=IntegrityError("INSERT ...", {}, Exception("constraint failed")),
    )

    with pytest.raises(DatabaseError):
        await service.reserve(drop_id, "alice")


@pytest.mark.asyncio
async def test_programming_errors_propagate(make_service, make_drop, mocker):
    drop_id = await make_drop()
    service = make_service()
    mocker.patch.object(service, "_reserve_in_transaction", side_effect=ValueError("boom"))

    with pytest.raises(ValueError):
        await service.reserve(drop_id, "alice")


@pytest.mark.asyncio
async def test_conflict_publishes_nothing(make_service, make_drop, notifier, mocker):
    drop_id = await make_drop()
    service = make_service()
    mocker.patch.object(
        service,
        "_reserve_in_transaction",
        side_effect=OperationalError("SELECT ...", {}, FakePgError("40001")),
    )

    await service.reserve(drop_id, "alice")

    assert notifier.stock_updates == []


@pytest.mark.asyncio
async def test_slow_commit_is_not_reported_as_conflict(
    make_service, make_drop, settings, notifier, fetch_reservation, mocker
):
    import aiosqlite

    from flashdrop.core.enums import ReservationStatus

    drop_id = await make_drop()
    reserved = await make_service().reserve(drop_id, "alice")
    notifier.clear_history()

    real_commit = aiosqlite.Connection.commit

    async def slow_commit(self):
        await real_commit(self)
        # Durable already; only the acknowledgement is late
        await asyncio.sleep(0.5)

    mocker.patch.object(aiosqlite.Connection, "commit", slow_commit)
    fast_settings = settings.model_copy(update={"TRANSACTION_TIMEOUT_SECONDS": 0.2})

    outcome = await make_service(settings_override=fast_settings).purchase(reserved.reservation.id, "alice")

    assert outcome.success is True
    stored = await fetch_reservation(reserved.reservation.id)
    assert stored.status == ReservationStatus.COMPLETED.value
    assert notifier.purchases[-1]["username"] == "alice"


@pytest.mark.asyncio
async def test_waiting_on_a_held_lock_becomes_server_busy(make_service, make_drop, settings):
    from flashdrop.services.locking import row_lock

    drop_id = await make_drop()
    fast_settings = settings.model_copy(update={"TRANSACTION_TIMEOUT_SECONDS": 0.05})
    holder = make_service()
    waiter = make_service(settings_override=fast_settings)

    async with row_lock(holder.db, "drop", drop_id):
        outcome = await waiter.reserve(drop_id, "alice")

    assert outcome.error == ErrorCode.CONCURRENT_UPDATE
    assert outcome.message == BUSY_MESSAGE
    # Nothing was taken while timing out
    assert (await make_service().reserve(drop_id, "alice")).extended is False
