"""Tests for the source fetcher against a local aiohttp server."""

import json

import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from fetchvault.transfer.config.settings import TransferSettings
from fetchvault.transfer.core.exceptions import UpstreamFetchError
from fetchvault.transfer.http_client.client import READ_CHUNK_SIZE, ContentTooLargeError, SourceFetcher

PAYLOAD = bytes(range(256)) * 8
STREAMED = bytes(range(256)) * (READ_CHUNK_SIZE // 128)


async def serve_archive(request: web.Request) -> web.Response:
    return web.Response(body=PAYLOAD, headers={"X-Seen-User-Agent": request.headers.get("User-Agent", "")})


async def serve_streamed(request: web.Request) -> web.StreamResponse:
    response = web.StreamResponse()
    response.enable_chunked_encoding()
    await response.prepare(request)
    for start in range(0, len(STREAMED), 4096):
        await response.write(STREAMED[start : start + 4096])
    await response.write_eof()
    return response


async def serve_csv(request: web.Request) -> web.Response:
    return web.Response(text="a,b\n1,2\n", content_type="text/csv", charset="utf-8")


async def echo_headers(request: web.Request) -> web.Response:
    return web.json_response(
        {
            "user_agent": request.headers.get("User-Agent"),
            "accept": request.headers.get("Accept"),
            "accept_encoding": request.headers.get("Accept-Encoding"),
        }
    )


@pytest_asyncio.fixture
async def source_server():
    app = web.Application()
    app.router.add_get("/files/archive.zip", serve_archive)
    app.router.add_get("/files/data.csv", serve_csv)
    app.router.add_get("/files/streamed.bin", serve_streamed)
    app.router.add_get("/headers", echo_headers)

    server = test_utils.TestServer(app)
    await server.start_server()
    yield server
    await server.close()


@pytest_asyncio.fixture
async def fetcher(settings):
    source_fetcher = SourceFetcher(settings)
    yield source_fetcher
    await source_fetcher.close()


@pytest.mark.asyncio
async def test_open_reads_headers_then_body(source_server, fetcher):
    async with fetcher.open(str(source_server.make_url("/files/archive.zip"))) as response:
        assert response.status == 200
        assert response.declared_length == 2048
        body = await response.read()

    assert body == PAYLOAD
    assert fetcher.get_stats()["requests_successful"] == 1


@pytest.mark.asyncio
async def test_content_type_header_exposed(source_server, fetcher):
    async with fetcher.open(str(source_server.make_url("/files/data.csv"))) as response:
        assert response.content_type_header == "text/csv; charset=utf-8"
        await response.read()


@pytest.mark.asyncio
async def test_browser_like_request_headers(source_server, fetcher):
    async with fetcher.open(str(source_server.make_url("/headers"))) as response:
        headers = json.loads(await response.read())

    assert "Mozilla/5.0" in headers["user_agent"]
    assert headers["accept"] == "*/*"
    assert headers["accept_encoding"] == "identity"


@pytest.mark.asyncio
async def test_non_success_status_raises(source_server, fetcher):
    with pytest.raises(UpstreamFetchError) as exc_info:
        async with fetcher.open(str(source_server.make_url("/files/missing.pdf"))):
            pass

    assert exc_info.value.status_code == 404
    assert str(exc_info.value) == "fetch failed: 404 Not Found"
    assert fetcher.get_stats()["requests_failed"] == 1


@pytest.mark.asyncio
async def test_declared_length_over_limit(source_server):
    settings = TransferSettings(_env_file=None, max_content_length=1024)
    fetcher = SourceFetcher(settings)
    try:
        with pytest.raises(ContentTooLargeError, match="content too large"):
            async with fetcher.open(str(source_server.make_url("/files/archive.zip"))):
                pass
    finally:
        await fetcher.close()


@pytest.mark.asyncio
async def test_unreachable_host_raises(fetcher):
    with pytest.raises(UpstreamFetchError, match="fetch failed"):
        async with fetcher.open("http://127.0.0.1:1/unreachable"):
            pass


@pytest.mark.asyncio
async def test_streamed_body_without_length(source_server, fetcher):
    async with fetcher.open(str(source_server.make_url("/files/streamed.bin"))) as response:
        assert response.declared_length == 0
        body = await response.read()

    assert type(body) is bytes
    assert body == STREAMED


@pytest.mark.asyncio
async def test_streamed_body_over_limit(source_server):
    fetcher = SourceFetcher(TransferSettings(_env_file=None, max_content_length=READ_CHUNK_SIZE))
    try:
        async with fetcher.open(str(source_server.make_url("/files/streamed.bin"))) as response:
            with pytest.raises(ContentTooLargeError, match="content too large"):
                await response.read()
    finally:
        await fetcher.close()
