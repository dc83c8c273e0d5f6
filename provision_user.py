"""
Create a user account + tenant + profile from the shell.
Uses the identity gateway configured in .env and an admin access token.
"""
import asyncio
import getpass
import json
import logging
import sys

from dorm.errors import ValidationError
from dorm.services.identity_gateway import get_identity_gateway
from dorm.services.provisioning_service import ProvisioningOrchestrator


async def provision_from_prompt():
    print("Admin access token:")
    token = input().strip()

    request = {}
    for field in ("email", "first_name", "last_name", "address", "phone"):
        print(f"Enter {field}:")
        request[field] = input().strip()
    request["password"] = getpass.getpass("Password: ")
    print("Role (admin/staff/tenant) [tenant]:")
    request["role"] = input().strip() or "tenant"

    orchestrator = ProvisioningOrchestrator(get_identity_gateway())
    try:
        outcome = await orchestrator.provision(request, token)
    except ValidationError as e:
        print(f"❌ {e.message}")
        return 1

    if outcome.ok:
        print(f"✅ Created identity {outcome.identity_id} for tenant {outcome.tenant_id}")
        return 0

    print(f"❌ {outcome.state.value}")
    print(json.dumps(outcome.to_dict(), indent=2, ensure_ascii=False))
    return 2


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        stream=sys.stdout,
    )
    sys.exit(asyncio.run(provision_from_prompt()))
