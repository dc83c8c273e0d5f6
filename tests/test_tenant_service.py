import pytest

from dorm.database.models import ResidentType
from dorm.errors import StaleVersionError, TenantNotFoundError, ValidationError
from dorm.services.tenant_service import (
    create_tenant, update_tenant, get_tenant, find_tenants_by_email
)


@pytest.mark.asyncio
async def test_create_dependent_without_address(async_session):
    """Dependents may be created without an address"""
    tenant_id = await create_tenant(async_session, {
        "first_name": "Somchai",
        "last_name": "Jaidee",
        "phone": "0812345678",
    })

    tenant = await get_tenant(async_session, tenant_id)
    assert tenant.full_name == "Somchai Jaidee"
    assert tenant.residents == ResidentType.dependent.value
    assert tenant.address is None
    assert tenant.version == 1


@pytest.mark.asyncio
async def test_create_requires_names(async_session):
    with pytest.raises(ValidationError) as exc:
        await create_tenant(async_session, {"first_name": "  ", "last_name": "Jaidee"})

    assert exc.value.kind == "validation"
    assert "first_name" in exc.value.message


@pytest.mark.asyncio
async def test_primary_requires_address(async_session):
    with pytest.raises(ValidationError):
        await create_tenant(async_session, {
            "first_name": "Malee",
            "last_name": "Srisuk",
            "residents": "primary",
        })

    tenant_id = await create_tenant(async_session, {
        "first_name": "Malee",
        "last_name": "Srisuk",
        "residents": "primary",
        "address": "12 Moo 3, Phuttachad",
    })
    tenant = await get_tenant(async_session, tenant_id)
    assert tenant.is_primary


@pytest.mark.asyncio
async def test_email_is_not_unique_across_tenants(async_session):
    """Two tenants may share an email (e.g. a parent paying for two rooms)"""
    first = await create_tenant(async_session, {
        "first_name": "A", "last_name": "One", "email": "Family@Example.com"
    })
    second = await create_tenant(async_session, {
        "first_name": "B", "last_name": "Two", "email": "family@example.com"
    })

    tenants = await find_tenants_by_email(async_session, "family@example.com")
    assert [t.id for t in tenants] == [first, second]


@pytest.mark.asyncio
async def test_update_is_partial_merge(async_session):
    tenant_id = await create_tenant(async_session, {
        "first_name": "Somchai",
        "last_name": "Jaidee",
        "phone": "0812345678",
        "emergency_contact": "Mother 0899999999",
    })

    tenant = await update_tenant(async_session, tenant_id, {"last_name": "Rakdee"})

    assert tenant.first_name == "Somchai"
    assert tenant.last_name == "Rakdee"
    assert tenant.phone == "0812345678"
    assert tenant.emergency_contact == "Mother 0899999999"
    assert tenant.version == 2


@pytest.mark.asyncio
async def test_update_clears_optional_field(async_session):
    tenant_id = await create_tenant(async_session, {
        "first_name": "Somchai", "last_name": "Jaidee", "phone": "0812345678"
    })

    tenant = await update_tenant(async_session, tenant_id, {"phone": None})
    assert tenant.phone is None


@pytest.mark.asyncio
async def test_update_cannot_blank_required_fields(async_session):
    tenant_id = await create_tenant(async_session, {"first_name": "Somchai", "last_name": "Jaidee"})

    with pytest.raises(ValidationError):
        await update_tenant(async_session, tenant_id, {"first_name": ""})
    with pytest.raises(ValidationError):
        await update_tenant(async_session, tenant_id, {"last_name": None})


@pytest.mark.asyncio
async def test_promoting_to_primary_needs_address(async_session):
    tenant_id = await create_tenant(async_session, {"first_name": "Somchai", "last_name": "Jaidee"})

    with pytest.raises(ValidationError):
        await update_tenant(async_session, tenant_id, {"residents": "primary"})

    tenant = await update_tenant(async_session, tenant_id, {
        "residents": "primary", "address": "99 Sukhumvit Rd"
    })
    assert tenant.is_primary


@pytest.mark.asyncio
async def test_stale_version_is_rejected(async_session):
    """Two editors load version 1, the second save must fail"""
    tenant_id = await create_tenant(async_session, {"first_name": "Somchai", "last_name": "Jaidee"})

    tenant = await update_tenant(async_session, tenant_id, {"phone": "0811111111"}, expected_version=1)
    assert tenant.version == 2

    with pytest.raises(StaleVersionError) as exc:
        await update_tenant(async_session, tenant_id, {"phone": "0822222222"}, expected_version=1)
    assert exc.value.reason == "stale_version"

    tenant = await get_tenant(async_session, tenant_id)
    assert tenant.phone == "0811111111"
    assert tenant.version == 2


@pytest.mark.asyncio
async def test_update_unknown_tenant(async_session):
    with pytest.raises(TenantNotFoundError):
        await update_tenant(async_session, 999, {"phone": "0811111111"})
