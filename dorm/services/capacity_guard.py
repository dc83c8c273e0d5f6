"""
Capacity Guard - serializes admissions per room.

Every insert of a current occupancy record goes through `reserve()`:

    async with reserve(session, room_id) as reservation:
        await check_in(session, reservation, tenant_id)

The count check, the insert and the commit happen while holding
  1. a process-local asyncio.Lock for the room, and
  2. a row-level lock on the room (SELECT ... FOR UPDATE, PostgreSQL).
(1) linearizes coroutines of this process, (2) linearizes other processes.
SQLite ignores FOR UPDATE and relies on (1) plus its database write lock.
"""
import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dorm.database.models import Room
from dorm.errors import RoomFullError, RoomNotFoundError
from dorm.services.occupancy_service import count_current

# Locks are bound to an event loop, so keep one registry per loop.
# Entries are never evicted: one lock per room, and the set of rooms is small.
_room_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[int, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def _room_lock(room_id: int) -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    locks = _room_locks.setdefault(loop, {})
    lock = locks.get(room_id)
    if lock is None:
        lock = locks[room_id] = asyncio.Lock()
    return lock


@dataclass(frozen=True)
class Reservation:
    """A granted slot. Valid only inside the reserve() block."""
    room_id: int
    room_number: str
    capacity: int
    occupied: int  # current occupants before this admission

    @property
    def headroom(self) -> int:
        return self.capacity - self.occupied


@asynccontextmanager
async def reserve(session: AsyncSession, room_id: int) -> AsyncIterator[Reservation]:
    """
    Reserve one slot in a room.

    Raises RoomNotFoundError / RoomFullError without touching anything.
    On a clean exit of the block the session is committed; on any exception
    it is rolled back, so the slot is never held by a half-done admission.
    The reservation owns the session transaction. Precondition: the session
    has no unsaved or flushed-but-uncommitted writes, since both the denial
    and the failure path roll back. Unsaved objects are refused up front.
    """
    if session.new or session.dirty or session.deleted:
        raise ValueError(
            f"Session has pending writes; commit or roll back before reserving room {room_id}"
        )

    async with _room_lock(room_id):
        try:
            # LOCK THE ROOM ROW so other processes queue behind us
            lock_stmt = (
                select(Room)
                .where(Room.id == room_id)
                .with_for_update()
            )
            lock_result = await session.execute(lock_stmt)
            room = lock_result.scalar_one_or_none()

            if not room:
                raise RoomNotFoundError(f"Room {room_id} not found", room_id=room_id)

            # Count with the lock held
            occupied = await count_current(session, room_id)
            if occupied >= room.capacity:
                logging.info(f"Admission denied: room {room.room_number} full ({occupied}/{room.capacity})")
                raise RoomFullError(
                    f"Room {room.room_number} is full ({occupied}/{room.capacity})",
                    room_id=room_id
                )

            yield Reservation(
                room_id=room.id,
                room_number=room.room_number,
                capacity=room.capacity,
                occupied=occupied
            )

            await session.commit()
        except BaseException:
            await session.rollback()
            raise


async def headroom(session: AsyncSession, room_id: int) -> int:
    """Free slots right now. Informational only, use reserve() to admit."""
    room = await session.get(Room, room_id)
    if not room:
        raise RoomNotFoundError(f"Room {room_id} not found", room_id=room_id)
    occupied = await count_current(session, room_id)
    return max(room.capacity - occupied, 0)
