"""Tests for the download API poller client."""

import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from fetchvault.schema.download import DownloadStatus
from fetchvault.transfer.poller import DownloadApiError, DownloadPollerClient, PollTimeoutError


def job_payload(download_id: str, status: str, progress: int, **extra):
    payload = {
        "downloadId": download_id,
        "sourceUrl": "https://files.example.com/archive.zip",
        "fileName": "archive.zip",
        "storageKey": f"downloads/{download_id}/archive.zip",
        "fileSize": 2048,
        "contentType": "application/zip",
        "status": status,
        "progress": progress,
        "error": None,
        "downloadCount": 0,
        "storageLocator": "",
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "2024-01-01T00:00:00Z",
        "downloadUrl": None,
    }
    payload.update(extra)
    return payload


class FakeApi:
    """Serves a scripted sequence of job states."""

    def __init__(self):
        self.states = [
            job_payload("abc123def456", "pending", 0),
            job_payload("abc123def456", "downloading", 40),
            job_payload("abc123def456", "completed", 100, downloadUrl="https://signed.example/1"),
        ]
        self.polls = 0
        self.confirmations = 0
        self.fail_next_poll = False

    async def create(self, request: web.Request) -> web.Response:
        body = await request.json()
        if not body.get("url"):
            return web.json_response({"error": "URL is required"}, status=400)
        return web.json_response(
            {"success": True, "downloadId": "abc123def456", "status": "pending", "message": "Download started"},
            status=201,
        )

    async def get(self, request: web.Request) -> web.Response:
        if request.match_info["download_id"] != "abc123def456":
            return web.json_response({"error": "Download not found"}, status=404)
        if self.fail_next_poll:
            self.fail_next_poll = False
            return web.json_response({"error": "temporarily unavailable"}, status=503)
        state = self.states[min(self.polls, len(self.states) - 1)]
        self.polls += 1
        return web.json_response(state)

    async def confirm(self, request: web.Request) -> web.Response:
        self.confirmations += 1
        return web.json_response(
            {
                "success": True,
                "downloadUrl": f"https://signed.example/{self.confirmations}",
                "downloadCount": self.confirmations,
            }
        )

    async def list(self, request: web.Request) -> web.Response:
        return web.json_response({"downloads": [self.states[-1]]})


@pytest_asyncio.fixture
async def api():
    fake = FakeApi()
    app = web.Application()
    app.router.add_post("/download", fake.create)
    app.router.add_get("/download", fake.list)
    app.router.add_get("/download/{download_id}", fake.get)
    app.router.add_post("/download/{download_id}", fake.confirm)

    server = test_utils.TestServer(app)
    await server.start_server()
    fake.base_url = str(server.make_url("/")).rstrip("/")
    yield fake
    await server.close()


@pytest_asyncio.fixture
async def client(api):
    poller = DownloadPollerClient(api.base_url, poll_interval=0.01)
    yield poller
    await poller.close()


@pytest.mark.asyncio
async def test_submit_returns_id(client):
    assert await client.submit("https://files.example.com/archive.zip") == "abc123def456"


@pytest.mark.asyncio
async def test_submit_error_carries_message(client):
    with pytest.raises(DownloadApiError) as exc_info:
        await client.submit("")

    assert exc_info.value.status_code == 400
    assert str(exc_info.value) == "URL is required"


@pytest.mark.asyncio
async def test_poll_until_terminal(client, api):
    seen = []

    view = await client.poll_until_terminal("abc123def456", on_update=lambda v: seen.append(v.progress))

    assert view.status == DownloadStatus.COMPLETED
    assert view.download_url == "https://signed.example/1"
    assert seen == [0, 40, 100]


@pytest.mark.asyncio
async def test_poll_survives_transient_errors(client, api):
    api.fail_next_poll = True

    view = await client.poll_until_terminal("abc123def456")

    assert view.status == DownloadStatus.COMPLETED
    assert api.polls == 3


@pytest.mark.asyncio
async def test_poll_unknown_job(client):
    with pytest.raises(DownloadApiError) as exc_info:
        await client.poll_until_terminal("missing")

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_poll_timeout(api):
    api.states = [job_payload("abc123def456", "downloading", 40)]
    poller = DownloadPollerClient(api.base_url, poll_interval=0.05)
    try:
        with pytest.raises(PollTimeoutError):
            await poller.poll_until_terminal("abc123def456", timeout=0.12)
    finally:
        await poller.close()


@pytest.mark.asyncio
async def test_fetch_with_confirm(client, api):
    view = await client.fetch("https://files.example.com/archive.zip", confirm=True)

    assert view.status == DownloadStatus.COMPLETED
    assert view.download_count == 1
    assert view.download_url == "https://signed.example/1"
    assert api.confirmations == 1


@pytest.mark.asyncio
async def test_list(client):
    jobs = await client.list()

    assert [job.download_id for job in jobs] == ["abc123def456"]
    assert jobs[0].status == DownloadStatus.COMPLETED
