import pytest

from dorm.database.core import unit_of_work
from dorm.errors import RoomNotFoundError
from dorm.services.room_service import create_room, get_room, list_rooms, room_summary
from dorm.services.tenant_service import find_tenants_by_email, create_tenant


@pytest.mark.asyncio
async def test_list_rooms_sorted_by_number(async_session):
    for number in ["B2", "A1", "C3"]:
        await create_room(async_session, number, capacity=2)

    rooms = await list_rooms(async_session)
    assert [r.room_number for r in rooms] == ["A1", "B2", "C3"]


@pytest.mark.asyncio
async def test_negative_capacity_rejected(async_session):
    with pytest.raises(ValueError):
        await create_room(async_session, "X1", capacity=-1)


@pytest.mark.asyncio
async def test_unknown_room(async_session):
    with pytest.raises(RoomNotFoundError):
        await get_room(async_session, 42)
    with pytest.raises(RoomNotFoundError):
        await room_summary(async_session, 42)


@pytest.mark.asyncio
async def test_empty_room_summary(async_session):
    room = await create_room(async_session, "A1", capacity=3)

    summary = await room_summary(async_session, room.id)

    assert summary.occupied == 0
    assert summary.headroom == 3
    assert summary.occupants == []
    assert summary.status == "available"


@pytest.mark.asyncio
async def test_unit_of_work_rolls_back_on_error(async_session, session_factory):
    with pytest.raises(RuntimeError):
        async with unit_of_work(session_factory) as session:
            await create_tenant(session, {
                "first_name": "Temp", "last_name": "Row", "email": "temp@example.com"
            }, commit=False)
            raise RuntimeError("request failed")

    assert await find_tenants_by_email(async_session, "temp@example.com") == []

    async with unit_of_work(session_factory) as session:
        await create_tenant(session, {
            "first_name": "Kept", "last_name": "Row", "email": "kept@example.com"
        }, commit=False)

    assert len(await find_tenants_by_email(async_session, "kept@example.com")) == 1
