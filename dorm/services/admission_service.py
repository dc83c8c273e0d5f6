import logging
from datetime import date
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from dorm.database.models import OccupancyRecord, Tenant
from dorm.errors import OccupancyNotFoundError, ValidationError
from dorm.schemas.validation import TenantCreate, parse
from dorm.services.capacity_guard import reserve
from dorm.services.occupancy_service import check_in, check_out, current_occupancy
from dorm.services.tenant_service import create_tenant, get_tenant


async def admit_tenant(
    session: AsyncSession,
    tenant_id: int,
    room_id: int,
    check_in_date: Optional[date] = None
) -> OccupancyRecord:
    """Admit an existing tenant into a room (capacity check + insert, atomic)."""
    async with reserve(session, room_id) as reservation:
        record = await check_in(session, reservation, tenant_id, check_in_date)

    logging.info(
        f"Tenant {tenant_id} admitted to room {reservation.room_number} "
        f"({reservation.occupied + 1}/{reservation.capacity})"
    )
    return record


async def admit_new_tenant(
    session: AsyncSession,
    room_id: int,
    fields,
    check_in_date: Optional[date] = None
) -> Tuple[Tenant, OccupancyRecord]:
    """
    Create a tenant together with its first occupancy record.
    Either both rows are committed or neither is.
    """
    # Validate before taking the room lock
    data = parse(TenantCreate, fields)

    async with reserve(session, room_id) as reservation:
        tenant_id = await create_tenant(session, data, commit=False)
        record = await check_in(session, reservation, tenant_id, check_in_date)

    tenant = await get_tenant(session, tenant_id)
    logging.info(
        f"New tenant {tenant_id} ({tenant.residents}) admitted to room {reservation.room_number} "
        f"({reservation.occupied + 1}/{reservation.capacity})"
    )
    return tenant, record


async def transfer_tenant(
    session: AsyncSession,
    tenant_id: int,
    new_room_id: int,
    move_date: Optional[date] = None
) -> OccupancyRecord:
    """
    Move a tenant to another room.
    The old record is closed and the new one opened in one unit, under the
    target room's reservation. If the target is full nothing changes.
    """
    move_date = move_date or date.today()

    current = await current_occupancy(session, tenant_id)
    if current is None:
        await get_tenant(session, tenant_id)  # NotFound for unknown tenants
        raise OccupancyNotFoundError(
            f"Tenant {tenant_id} has no current room to move from",
            tenant_id=tenant_id
        )
    if current.room_id == new_room_id:
        raise ValidationError(
            f"Tenant {tenant_id} already lives in room {new_room_id}",
            tenant_id=tenant_id,
            room_id=new_room_id
        )
    old_room_id = current.room_id
    occupancy_id = current.id

    # End the read-only transaction opened by the lookups above
    await session.rollback()

    async with reserve(session, new_room_id) as reservation:
        await check_out(session, occupancy_id, move_date, commit=False)
        record = await check_in(session, reservation, tenant_id, move_date)

    logging.info(f"Tenant {tenant_id} moved from room {old_room_id} to room {new_room_id}")
    return record
