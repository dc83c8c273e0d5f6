import logging
from datetime import date
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import select, update, func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dorm.database.models import OccupancyRecord, Tenant, ResidentType
from dorm.errors import (
    DuplicateCurrentOccupancyError, OccupancyNotFoundError, TenantNotFoundError
)

if TYPE_CHECKING:
    from dorm.services.capacity_guard import Reservation

CURRENT_OCCUPANCY_INDEX = "uq_occupancy_current_tenant"


async def count_current(session: AsyncSession, room_id: int) -> int:
    stmt = select(func.count(OccupancyRecord.id)).where(
        OccupancyRecord.room_id == room_id,
        OccupancyRecord.is_current.is_(True)
    )
    result = await session.execute(stmt)
    return int(result.scalar())


async def current_occupancy(session: AsyncSession, tenant_id: int) -> Optional[OccupancyRecord]:
    stmt = select(OccupancyRecord).where(
        OccupancyRecord.tenant_id == tenant_id,
        OccupancyRecord.is_current.is_(True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def check_in(
    session: AsyncSession,
    reservation: "Reservation",
    tenant_id: int,
    check_in_date: Optional[date] = None
) -> OccupancyRecord:
    """
    Insert a current occupancy record into the reserved room.
    Only reserve() hands out a Reservation; it also commits, this only flushes.
    """
    tenant_stmt = select(Tenant).where(Tenant.id == tenant_id).with_for_update()
    tenant_result = await session.execute(tenant_stmt)
    tenant = tenant_result.scalar_one_or_none()

    if not tenant:
        raise TenantNotFoundError(f"Tenant {tenant_id} not found", tenant_id=tenant_id)

    existing = await current_occupancy(session, tenant_id)
    if existing:
        raise DuplicateCurrentOccupancyError(
            f"Tenant {tenant_id} already occupies room {existing.room_id} "
            f"(occupancy {existing.id}). Check out first.",
            tenant_id=tenant_id,
            room_id=existing.room_id,
            occupancy_id=existing.id
        )

    record = OccupancyRecord(
        tenant_id=tenant_id,
        room_id=reservation.room_id,
        check_in_date=check_in_date or date.today(),
        is_current=True
    )
    session.add(record)

    tenant.room_id = reservation.room_id
    tenant.room_number = reservation.room_number

    try:
        await session.flush()  # Get record.id
    except IntegrityError as e:
        # Lost a race with an admission into another room
        if not _is_current_occupancy_violation(e):
            raise
        raise DuplicateCurrentOccupancyError(
            f"Tenant {tenant_id} was admitted to another room concurrently",
            tenant_id=tenant_id
        ) from e
    return record


def _is_current_occupancy_violation(error: IntegrityError) -> bool:
    # PostgreSQL names the index, SQLite names the column
    text = str(error.orig)
    return CURRENT_OCCUPANCY_INDEX in text or "occupancy.tenant_id" in text


async def check_out(
    session: AsyncSession,
    occupancy_id: int,
    check_out_date: Optional[date] = None,
    commit: bool = True
) -> OccupancyRecord:
    """
    Close a current occupancy record and free the slot.
    Commits, so the next reservation on the room sees the released slot.
    commit=False is only for room transfers, which commit inside a reservation.
    """
    check_out_date = check_out_date or date.today()

    # ATOMIC UPDATE: only a still-current record can be closed
    stmt = (
        update(OccupancyRecord)
        .where(
            OccupancyRecord.id == occupancy_id,
            OccupancyRecord.is_current.is_(True)
        )
        .values(is_current=False, check_out_date=check_out_date)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)

    if result.rowcount == 0:
        await session.rollback()
        raise OccupancyNotFoundError(
            f"Occupancy {occupancy_id} not found or already closed",
            occupancy_id=occupancy_id
        )

    record = await session.get(OccupancyRecord, occupancy_id, populate_existing=True)

    # Clear the denormalized room only if it still points at this room
    tenant = await session.get(Tenant, record.tenant_id, populate_existing=True)
    if tenant and tenant.room_id == record.room_id:
        tenant.room_id = None
        tenant.room_number = None
    await session.flush()

    if commit:
        await session.commit()
    logging.info(f"Occupancy {occupancy_id} closed: tenant {record.tenant_id} left room {record.room_id}")
    return record


async def current_occupants(session: AsyncSession, room_id: int) -> List[Tenant]:
    """Current tenants of a room: primary residents first, then check-in order."""
    primary_first = case(
        (Tenant.residents == ResidentType.primary.value, 0),
        else_=1
    )
    stmt = (
        select(Tenant)
        .join(OccupancyRecord, OccupancyRecord.tenant_id == Tenant.id)
        .where(
            OccupancyRecord.room_id == room_id,
            OccupancyRecord.is_current.is_(True)
        )
        .order_by(primary_first, OccupancyRecord.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def occupancy_history(session: AsyncSession, tenant_id: int) -> List[OccupancyRecord]:
    """All occupancy records of a tenant, newest first."""
    stmt = (
        select(OccupancyRecord)
        .where(OccupancyRecord.tenant_id == tenant_id)
        .order_by(OccupancyRecord.check_in_date.desc(), OccupancyRecord.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
