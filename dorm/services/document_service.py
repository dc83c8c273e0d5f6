"""
Contract Document Lookup.

Signed contracts are uploaded to the document host as `{tenant_id}.pdf` or,
for photographed paper contracts, `{tenant_id}.jpg`.
"""
import asyncio
import logging
from typing import Optional, Sequence

import aiohttp

from dorm.config import config

CONTRACT_EXTENSIONS = ("pdf", "jpg")


class ContractDocumentLookup:
    def __init__(
        self,
        base_url: str,
        timeout: float = 5,
        extensions: Sequence[str] = CONTRACT_EXTENSIONS
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.extensions = tuple(extensions)

    def url_for(self, tenant_id, extension: str) -> str:
        return f"{self.base_url}/{tenant_id}.{extension}"

    async def find(self, tenant_id) -> Optional[str]:
        """
        URL of the tenant's contract, or None.
        PDF wins over JPG. Host errors count as "not found" and are logged.
        """
        try:
            async with aiohttp.ClientSession() as session:
                for extension in self.extensions:
                    url = self.url_for(tenant_id, extension)
                    if await self._exists(session, url):
                        return url
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logging.warning(f"Contract lookup for tenant {tenant_id} failed: {e}")
        return None

    async def _exists(self, session: aiohttp.ClientSession, url: str) -> bool:
        async with session.head(
            url,
            allow_redirects=True,
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        ) as resp:
            return 200 <= resp.status < 300


def get_document_lookup() -> ContractDocumentLookup:
    return ContractDocumentLookup(config.DOCUMENTS_BASE_URL, timeout=config.DOCUMENT_LOOKUP_TIMEOUT)
