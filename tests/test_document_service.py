import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp import test_utils

from dorm.config import config
from dorm.services.document_service import ContractDocumentLookup, get_document_lookup


@pytest_asyncio.fixture
async def document_host():
    """Static file host; server.files holds the names that exist"""
    files = set()

    async def serve(request):
        if request.match_info["name"] in files:
            return web.Response(body=b"%PDF-1.4")
        raise web.HTTPNotFound()

    app = web.Application()
    app.router.add_get("/images/{name}", serve)  # also answers HEAD

    server = test_utils.TestServer(app)
    server.files = files
    await server.start_server()
    yield server
    await server.close()


def _lookup(server):
    return ContractDocumentLookup(str(server.make_url("/images")), timeout=2)


@pytest.mark.asyncio
async def test_pdf_wins_over_jpg(document_host):
    document_host.files.update({"17.pdf", "17.jpg"})

    url = await _lookup(document_host).find(17)

    assert url.endswith("/images/17.pdf")


@pytest.mark.asyncio
async def test_falls_back_to_jpg(document_host):
    document_host.files.add("18.jpg")

    url = await _lookup(document_host).find(18)

    assert url.endswith("/images/18.jpg")


@pytest.mark.asyncio
async def test_missing_contract_is_none(document_host):
    assert await _lookup(document_host).find(19) is None


@pytest.mark.asyncio
async def test_unreachable_host_is_none(document_host):
    lookup = _lookup(document_host)
    await document_host.close()

    assert await lookup.find(20) is None


def test_url_for_strips_trailing_slash():
    lookup = ContractDocumentLookup("https://files.example.com/images/")
    assert lookup.url_for("abc", "pdf") == "https://files.example.com/images/abc.pdf"


def test_configured_lookup_uses_documents_host():
    lookup = get_document_lookup()
    assert lookup.timeout == config.DOCUMENT_LOOKUP_TIMEOUT
    assert lookup.url_for(7, "pdf") == f"{config.DOCUMENTS_BASE_URL.rstrip('/')}/7.pdf"
