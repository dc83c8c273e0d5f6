from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from dorm.database.models import Identity, Profile, Tenant
from dorm.errors import IdentityNotFoundError, TenantNotFoundError

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def get_profile(session: AsyncSession, identity_id: str) -> Optional[Profile]:
    stmt = select(Profile).where(Profile.id == identity_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def link_profile(session: AsyncSession, identity_id: str, tenant_id: int) -> Profile:
    """
    Bind an identity to a tenant record.
    Idempotent upsert keyed by identity id; relinking moves the profile.
    """
    identity = await session.get(Identity, identity_id)
    if not identity:
        raise IdentityNotFoundError(f"Identity {identity_id} not found", identity_id=identity_id)

    tenant = await session.get(Tenant, tenant_id)
    if not tenant:
        raise TenantNotFoundError(f"Tenant {tenant_id} not found", tenant_id=tenant_id)

    # INSERT ... ON CONFLICT for atomic upsert
    insert = _UPSERT_DIALECTS[session.get_bind().dialect.name]
    stmt = insert(Profile).values(
        id=identity_id,
        tenant_id=tenant_id
    ).on_conflict_do_update(
        index_elements=['id'],
        set_={'tenant_id': tenant_id}
    )
    await session.execute(stmt)
    await session.commit()

    profile = await session.get(Profile, identity_id, populate_existing=True)
    return profile
