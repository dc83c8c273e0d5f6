import asyncio
import pytest
from datetime import date

from dorm.errors import DuplicateCurrentOccupancyError, OccupancyNotFoundError, TenantNotFoundError
from dorm.services import occupancy_service
from dorm.services.admission_service import admit_tenant, admit_new_tenant
from dorm.services.occupancy_service import (
    check_out, current_occupants, current_occupancy, occupancy_history, count_current
)
from dorm.services.room_service import create_room, room_summary
from dorm.services.tenant_service import create_tenant, get_tenant


async def _tenant(session, first_name, residents="dependent"):
    fields = {"first_name": first_name, "last_name": "Test", "residents": residents}
    if residents == "primary":
        fields["address"] = "1 Test Rd"
    return await create_tenant(session, fields)


@pytest.mark.asyncio
async def test_check_in_sets_current_room(async_session):
    room = await create_room(async_session, "A101", capacity=2)
    room_id = room.id
    tenant_id = await _tenant(async_session, "Anan")

    record = await admit_tenant(async_session, tenant_id, room_id, date(2026, 1, 1))

    assert record.is_current
    assert record.check_in_date == date(2026, 1, 1)
    assert record.check_out_date is None

    tenant = await get_tenant(async_session, tenant_id)
    assert tenant.room_id == room_id
    assert tenant.room_number == "A101"


@pytest.mark.asyncio
async def test_second_current_occupancy_is_rejected(async_session):
    first = await create_room(async_session, "A101", capacity=2)
    second = await create_room(async_session, "A102", capacity=2)
    first_id, second_id = first.id, second.id
    tenant_id = await _tenant(async_session, "Anan")

    await admit_tenant(async_session, tenant_id, first_id)

    with pytest.raises(DuplicateCurrentOccupancyError) as exc:
        await admit_tenant(async_session, tenant_id, second_id)
    assert exc.value.ids["room_id"] == first_id

    # Nothing was written to the second room
    assert await count_current(async_session, second_id) == 0
    assert await count_current(async_session, first_id) == 1


@pytest.mark.asyncio
async def test_stale_duplicate_check_still_rejected_by_index(async_session, monkeypatch):
    """The unique index backs up the check when another admission wins the race"""
    first = await create_room(async_session, "A101", capacity=2)
    second = await create_room(async_session, "A102", capacity=2)
    first_id, second_id = first.id, second.id
    tenant_id = await _tenant(async_session, "Anan")

    await admit_tenant(async_session, tenant_id, first_id)

    async def no_current(session, tenant_id):
        return None

    monkeypatch.setattr(occupancy_service, "current_occupancy", no_current)

    with pytest.raises(DuplicateCurrentOccupancyError) as exc:
        await admit_tenant(async_session, tenant_id, second_id)
    assert exc.value.ids["tenant_id"] == tenant_id

    assert await count_current(async_session, second_id) == 0
    assert await count_current(async_session, first_id) == 1


@pytest.mark.asyncio
async def test_concurrent_admissions_into_two_rooms(async_session, session_factory):
    """Different rooms take different locks; one tenant still gets one room"""
    first = await create_room(async_session, "A101", capacity=2)
    second = await create_room(async_session, "A102", capacity=2)
    room_ids = [first.id, second.id]
    tenant_id = await _tenant(async_session, "Anan")

    async def admit(room_id):
        async with session_factory() as session:
            try:
                await admit_tenant(session, tenant_id, room_id)
                return "allow"
            except DuplicateCurrentOccupancyError:
                return "duplicate"

    results = await asyncio.gather(*(admit(r) for r in room_ids))

    assert sorted(results) == ["allow", "duplicate"]
    assert sum([await count_current(async_session, r) for r in room_ids]) == 1


@pytest.mark.asyncio
async def test_check_in_unknown_tenant(async_session):
    room = await create_room(async_session, "A101", capacity=2)
    room_id = room.id

    with pytest.raises(TenantNotFoundError):
        await admit_tenant(async_session, 404, room_id)
    assert await count_current(async_session, room_id) == 0


@pytest.mark.asyncio
async def test_check_out_closes_record(async_session):
    room = await create_room(async_session, "A101", capacity=1)
    room_id = room.id
    tenant_id = await _tenant(async_session, "Anan")
    record = await admit_tenant(async_session, tenant_id, room_id, date(2026, 1, 1))
    occupancy_id = record.id

    closed = await check_out(async_session, occupancy_id, date(2026, 6, 30))

    assert closed.is_current is False
    assert closed.check_out_date == date(2026, 6, 30)
    assert await current_occupancy(async_session, tenant_id) is None

    tenant = await get_tenant(async_session, tenant_id)
    assert tenant.room_id is None
    assert tenant.room_number is None


@pytest.mark.asyncio
async def test_check_out_twice_is_not_found(async_session):
    room = await create_room(async_session, "A101", capacity=1)
    room_id = room.id
    tenant_id = await _tenant(async_session, "Anan")
    record = await admit_tenant(async_session, tenant_id, room_id)
    occupancy_id = record.id

    await check_out(async_session, occupancy_id)

    with pytest.raises(OccupancyNotFoundError):
        await check_out(async_session, occupancy_id)
    with pytest.raises(OccupancyNotFoundError):
        await check_out(async_session, 12345)


@pytest.mark.asyncio
async def test_current_occupants_primary_first_then_insertion_order(async_session):
    """[A:dependent, B:primary, C:dependent, D:primary] -> [B, D, A, C]"""
    room = await create_room(async_session, "B201", capacity=4)
    room_id = room.id

    for name, residents in [("A", "dependent"), ("B", "primary"), ("C", "dependent"), ("D", "primary")]:
        tenant_id = await _tenant(async_session, name, residents)
        await admit_tenant(async_session, tenant_id, room_id)

    occupants = await current_occupants(async_session, room_id)
    assert [t.first_name for t in occupants] == ["B", "D", "A", "C"]


@pytest.mark.asyncio
async def test_ordering_ignores_alphabet(async_session):
    room = await create_room(async_session, "B202", capacity=3)
    room_id = room.id

    for name in ["Zed", "Amy", "Mai"]:
        await admit_tenant(async_session, await _tenant(async_session, name), room_id)

    occupants = await current_occupants(async_session, room_id)
    assert [t.first_name for t in occupants] == ["Zed", "Amy", "Mai"]


@pytest.mark.asyncio
async def test_several_primaries_per_room_are_allowed(async_session):
    """No 'one primary per room' rule: both primaries are admitted"""
    room = await create_room(async_session, "C301", capacity=2)
    room_id = room.id

    await admit_tenant(async_session, await _tenant(async_session, "P1", "primary"), room_id)
    await admit_tenant(async_session, await _tenant(async_session, "P2", "primary"), room_id)

    occupants = await current_occupants(async_session, room_id)
    assert [t.is_primary for t in occupants] == [True, True]


@pytest.mark.asyncio
async def test_history_keeps_closed_records(async_session):
    room = await create_room(async_session, "A101", capacity=1)
    room_id = room.id
    tenant_id = await _tenant(async_session, "Anan")

    first = await admit_tenant(async_session, tenant_id, room_id, date(2025, 1, 1))
    first_id = first.id
    await check_out(async_session, first_id, date(2025, 12, 31))
    second = await admit_tenant(async_session, tenant_id, room_id, date(2026, 2, 1))
    second_id = second.id

    history = await occupancy_history(async_session, tenant_id)
    assert [r.id for r in history] == [second_id, first_id]
    assert [r.is_current for r in history] == [True, False]


@pytest.mark.asyncio
async def test_admit_new_tenant_creates_both_rows(async_session):
    room = await create_room(async_session, "D401", capacity=2)
    room_id = room.id

    tenant, record = await admit_new_tenant(async_session, room_id, {
        "first_name": "Nok",
        "last_name": "Saelim",
        "phone": "0855555555",
    })

    assert tenant.residents == "dependent"
    assert tenant.room_number == "D401"
    assert record.tenant_id == tenant.id

    summary = await room_summary(async_session, room_id)
    assert summary.occupied == 1
    assert summary.headroom == 1
    assert [t.id for t in summary.occupants] == [tenant.id]
