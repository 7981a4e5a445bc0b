"""
HTTP client for the download API.

Submits URLs, polls jobs until they reach a terminal state, and confirms
completed downloads.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiohttp
from aiohttp import ClientError, ClientTimeout

from ...schema.download import DownloadJob, DownloadStatus, DownloadView
from ..core.exceptions import TransferError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0


class DownloadApiError(TransferError):
    """The download API answered with an error or could not be reached"""

    def __init__(self, message: str, status_code: Optional[int] = None, original_error: Optional[Exception] = None):
        self.status_code = status_code
        super().__init__(message, original_error)


class PollTimeoutError(DownloadApiError):
    """A job did not reach a terminal state in time"""


class DownloadPollerClient:
    """
    aiohttp client for a running fetchvault API.

    Use as an async context manager or call close() when done.
    """

    def __init__(
        self,
        base_url: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        request_timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "DownloadPollerClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=ClientTimeout(total=self.request_timeout))
            self._owns_session = True
        return self._session

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        session = self._ensure_session()
        url = f"{self.base_url}{path}"

        try:
            async with session.request(method, url, json=json) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = {}

                if response.status >= 400:
                    message = data.get("error") if isinstance(data, dict) else None
                    raise DownloadApiError(
                        message or f"{method} {path} answered {response.status}",
                        status_code=response.status,
                    )
                return data

        except (ClientError, asyncio.TimeoutError) as e:
            raise DownloadApiError(f"{method} {path} failed: {type(e).__name__}: {e}", original_error=e) from e

    async def submit(self, url: str) -> str:
        """Submit url and return the new download id."""
        data = await self._request("POST", "/download", json={"url": url})
        return data["downloadId"]

    async def get(self, download_id: str) -> DownloadView:
        data = await self._request("GET", f"/download/{download_id}")
        return DownloadView.model_validate(data)

    async def list(self) -> List[DownloadJob]:
        data = await self._request("GET", "/download")
        return [DownloadJob.model_validate(item) for item in data.get("downloads", [])]

    async def confirm_download(self, download_id: str) -> Tuple[str, int]:
        data = await self._request("POST", f"/download/{download_id}")
        return data["downloadUrl"], data["downloadCount"]

    async def poll_until_terminal(
        self,
        download_id: str,
        timeout: Optional[float] = None,
        on_update: Optional[Callable[[DownloadView], None]] = None,
    ) -> DownloadView:
        """
        Poll a job every poll_interval seconds until it completes or fails.

        Transient poll errors are logged and polling continues; an unknown
        job id stops polling.

        Raises:
            DownloadApiError: If the job does not exist
            PollTimeoutError: If timeout elapses first
        """
        deadline = time.monotonic() + timeout if timeout is not None else None

        while True:
            try:
                view = await self.get(download_id)
            except DownloadApiError as e:
                if e.status_code == 404:
                    raise
                logger.warning(f"Error polling download {download_id}: {e}")
            else:
                if on_update is not None:
                    on_update(view)
                if view.status.is_terminal:
                    return view

            if deadline is not None and time.monotonic() + self.poll_interval > deadline:
                raise PollTimeoutError(f"Download {download_id} not finished after {timeout}s")

            await asyncio.sleep(self.poll_interval)

    async def fetch(
        self,
        url: str,
        confirm: bool = False,
        timeout: Optional[float] = None,
        on_update: Optional[Callable[[DownloadView], None]] = None,
    ) -> DownloadView:
        """Submit url and wait for the result, confirming the download if it completed."""
        download_id = await self.submit(url)
        logger.info(f"Submitted {url} as {download_id}")

        view = await self.poll_until_terminal(download_id, timeout=timeout, on_update=on_update)

        if confirm and view.status == DownloadStatus.COMPLETED:
            download_url, download_count = await self.confirm_download(download_id)
            view = view.model_copy(update={"download_url": download_url, "download_count": download_count})

        return view
