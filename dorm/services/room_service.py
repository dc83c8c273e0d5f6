from typing import List, NamedTuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dorm.database.models import Room, RoomStatus, Tenant
from dorm.errors import RoomNotFoundError
from dorm.services.occupancy_service import count_current, current_occupants


class RoomSummary(NamedTuple):
    """Room details as shown in the room dialog"""
    room_id: int
    room_number: str
    status: str
    capacity: int
    occupied: int
    headroom: int
    occupants: List[Tenant]  # primary residents first


async def create_room(
    session: AsyncSession,
    room_number: str,
    capacity: int,
    status: RoomStatus = RoomStatus.available
) -> Room:
    """Seed a room. Rooms are otherwise managed outside this package."""
    if capacity < 0:
        raise ValueError(f"Room capacity must be >= 0, got {capacity}")
    room = Room(room_number=room_number, capacity=capacity, status=status.value)
    session.add(room)
    await session.commit()
    return room


async def get_room(session: AsyncSession, room_id: int) -> Room:
    stmt = select(Room).where(Room.id == room_id)
    result = await session.execute(stmt)
    room = result.scalar_one_or_none()
    if not room:
        raise RoomNotFoundError(f"Room {room_id} not found", room_id=room_id)
    return room


async def list_rooms(session: AsyncSession) -> List[Room]:
    stmt = select(Room).order_by(Room.room_number)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def room_summary(session: AsyncSession, room_id: int) -> RoomSummary:
    room = await get_room(session, room_id)
    occupied = await count_current(session, room_id)
    occupants = await current_occupants(session, room_id)
    return RoomSummary(
        room_id=room.id,
        room_number=room.room_number,
        status=room.status,
        capacity=room.capacity,
        occupied=occupied,
        headroom=max(room.capacity - occupied, 0),
        occupants=occupants
    )
