import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dorm.database.models import Tenant, ResidentType
from dorm.errors import TenantNotFoundError, StaleVersionError, ValidationError
from dorm.schemas.validation import TenantCreate, TenantUpdate, parse


async def get_tenant(session: AsyncSession, tenant_id: int) -> Tenant:
    stmt = select(Tenant).where(Tenant.id == tenant_id)
    result = await session.execute(stmt)
    tenant = result.scalar_one_or_none()
    if not tenant:
        raise TenantNotFoundError(f"Tenant {tenant_id} not found", tenant_id=tenant_id)
    return tenant


async def find_tenants_by_email(session: AsyncSession, email: str) -> List[Tenant]:
    """Tenants sharing an email. Emails are not unique across tenants."""
    stmt = select(Tenant).where(Tenant.email == email.strip().lower()).order_by(Tenant.id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def create_tenant(session: AsyncSession, fields, commit: bool = True) -> int:
    """
    Create a tenant record and return its id.

    `fields` is a dict or TenantCreate. first_name/last_name are required,
    address is required for primary residents. With commit=False the row is
    only flushed so it can join a larger unit of work (admissions).
    """
    data = parse(TenantCreate, fields)
    values = data.model_dump()
    if values.get("email"):
        values["email"] = values["email"].lower()

    tenant = Tenant(**values)
    session.add(tenant)
    await session.flush()  # Get tenant.id

    if commit:
        await session.commit()

    logging.info(f"Tenant {tenant.id} created ({tenant.residents})")
    return tenant.id


async def update_tenant(
    session: AsyncSession,
    tenant_id: int,
    fields,
    expected_version: Optional[int] = None
) -> Tenant:
    """
    Partial update. Fields not passed are left unchanged.

    Without expected_version this is last-write-wins. With it, the write only
    applies if the stored version still matches, otherwise StaleVersionError.
    """
    data = parse(TenantUpdate, fields)
    values = data.model_dump(exclude_unset=True)
    if values.get("email"):
        values["email"] = values["email"].lower()

    tenant = await get_tenant(session, tenant_id)

    # Merged record must still satisfy the primary-address rule
    residents = values.get("residents", tenant.residents)
    address = values["address"] if "address" in values else tenant.address
    if residents == ResidentType.primary.value and not address:
        raise ValidationError(
            "address is required for a primary resident",
            tenant_id=tenant_id
        )

    stmt = (
        update(Tenant)
        .where(Tenant.id == tenant_id)
        .values(**values, version=Tenant.version + 1)
        .execution_options(synchronize_session=False)
    )
    if expected_version is not None:
        stmt = stmt.where(Tenant.version == expected_version)

    result = await session.execute(stmt)
    if result.rowcount == 0:
        await session.rollback()
        current = await get_tenant(session, tenant_id)
        raise StaleVersionError(
            f"Tenant {tenant_id} was modified (version {current.version}, expected {expected_version})",
            tenant_id=tenant_id
        )

    await session.commit()
    await session.refresh(tenant)
    return tenant
