"""
Identity Provisioning Gateway client.

User accounts (login credentials) are issued by an external service; this
package only forwards the request with the administrator's token and keeps
the returned identity id.
"""
import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Optional

import aiohttp

from dorm.config import config
from dorm.errors import DependencyError, DependencyTimeoutError, DuplicateEmailError

# Error texts the gateway uses for an already registered email
_DUPLICATE_EMAIL_RE = re.compile(r"already (been )?(registered|exists)|email.*(exists|taken|in use)", re.IGNORECASE)


@dataclass
class IdentityRequest:
    email: str
    password: str
    first_name: str
    last_name: str
    phone: Optional[str]
    role: str

    def to_payload(self) -> dict:
        data = asdict(self)
        # Gateway speaks camelCase
        return {
            "email": data["email"],
            "password": data["password"],
            "firstName": data["first_name"],
            "lastName": data["last_name"],
            "phone": data["phone"],
            "role": data["role"],
        }


class IdentityGateway(ABC):
    """Abstract identity issuer"""

    @abstractmethod
    async def create_identity(self, request: IdentityRequest, access_token: str) -> str:
        """
        Issue an identity and return its id.
        Raises DuplicateEmailError or DependencyError.
        """
        pass


class HttpIdentityGateway(IdentityGateway):
    """Gateway exposed as an HTTP function (POST json, Bearer auth)"""

    def __init__(self, url: str, timeout: float = 10):
        self.url = url
        self.timeout = timeout

    def _get_headers(self, access_token: str) -> dict:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json"
        }

    async def create_identity(self, request: IdentityRequest, access_token: str) -> str:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.url,
                    headers=self._get_headers(access_token),
                    json=request.to_payload(),
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError:
                        data = None
                    status = resp.status
        except asyncio.TimeoutError as e:
            raise DependencyTimeoutError(
                f"Identity gateway timed out after {self.timeout}s"
            ) from e
        except aiohttp.ClientError as e:
            raise DependencyError(f"Identity gateway unreachable: {e}") from e

        return self._parse_response(status, data, request.email)

    def _parse_response(self, status: int, data, email: str) -> str:
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            error = error.get("message") or str(error)

        if status == 409 or (error and _DUPLICATE_EMAIL_RE.search(str(error))):
            raise DuplicateEmailError(f"Email {email} is already registered", email=email)

        if status >= 400 or error:
            logging.error(f"Identity gateway error: {status} - {error or data}")
            raise DependencyError(f"Identity gateway error {status}: {error or 'no details'}")

        identity_id = None
        if isinstance(data, dict):
            user = data.get("user")
            if isinstance(user, dict):
                identity_id = user.get("id")
            identity_id = identity_id or data.get("identity_id")

        if not identity_id:
            raise DependencyError("Identity gateway response has no identity id")
        return str(identity_id)


# Global instance (initialized lazily from config)
identity_gateway: Optional[HttpIdentityGateway] = None


def get_identity_gateway() -> HttpIdentityGateway:
    global identity_gateway
    if identity_gateway is None:
        if not config.IDENTITY_GATEWAY_URL:
            raise DependencyError("IDENTITY_GATEWAY_URL is not configured")
        identity_gateway = HttpIdentityGateway(
            config.IDENTITY_GATEWAY_URL,
            timeout=config.IDENTITY_GATEWAY_TIMEOUT
        )
    return identity_gateway
