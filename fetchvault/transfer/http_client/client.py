"""
HTTP client for fetching source URLs.

Requests unencoded transfer with a browser-like identity so the declared
Content-Length matches the bytes received, and exposes the response in two
steps (headers, then body) so callers can report progress in between.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp
from aiohttp import ClientError, ClientTimeout

from ..config.settings import TransferSettings, get_cached_settings
from ..core.exceptions import UpstreamFetchError

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


class ContentTooLargeError(UpstreamFetchError):
    """Raised when the source exceeds the configured size limit"""

    def __init__(self, url: str, content_length: int, max_length: int):
        self.url = url
        self.content_length = content_length
        self.max_length = max_length
        super().__init__(f"content too large: {content_length} bytes > {max_length} bytes")


class SourceResponse:
    """
    A successful response whose headers have been read but whose body has not.
    """

    def __init__(self, response: aiohttp.ClientResponse, max_content_length: Optional[int] = None):
        self._response = response
        self._max_content_length = max_content_length

    @property
    def status(self) -> int:
        return self._response.status

    @property
    def url(self) -> str:
        return str(self._response.url)

    @property
    def declared_length(self) -> int:
        """Content-Length header as an int, 0 when absent or invalid"""
        raw = self._response.headers.get("Content-Length")
        if not raw:
            return 0
        try:
            return max(0, int(raw))
        except ValueError:
            return 0

    @property
    def content_type_header(self) -> Optional[str]:
        return self._response.headers.get("Content-Type")

    async def read(self) -> bytes:
        """
        Buffer the whole body in memory.

        Raises:
            UpstreamFetchError: On transport failure or when the size limit is exceeded
        """
        chunks: List[bytes] = []
        received = 0
        try:
            async for chunk in self._response.content.iter_chunked(READ_CHUNK_SIZE):
                chunks.append(chunk)
                received += len(chunk)
                if self._max_content_length is not None and received > self._max_content_length:
                    raise ContentTooLargeError(self.url, received, self._max_content_length)
        except (ClientError, asyncio.TimeoutError) as e:
            raise UpstreamFetchError(f"fetch failed: {type(e).__name__}: {e}", original_error=e) from e

        # bytes, so io.BytesIO in the upload shares the buffer
        return b"".join(chunks)


class SourceFetcher:
    """
    aiohttp wrapper used by the pipeline to retrieve source URLs.

    No retries: a failed fetch fails the job.
    """

    def __init__(self, settings: Optional[TransferSettings] = None, session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings or get_cached_settings()
        self._session = session
        self._owns_session = session is None

        self.stats = {
            "requests_made": 0,
            "requests_successful": 0,
            "requests_failed": 0,
            "total_response_time": 0.0,
        }

    @property
    def default_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.settings.user_agent,
            "Accept": "*/*",
            "Accept-Encoding": "identity",
        }

    async def initialize(self) -> None:
        await self._ensure_session()

    async def close(self) -> None:
        """Close the HTTP session if this fetcher created it"""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
        logger.info("Source fetcher closed")

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.settings.request_timeout),
                headers=self.default_headers,
                auto_decompress=False,
                raise_for_status=False,
            )
            self._owns_session = True
            logger.debug("Created new HTTP session")
        return self._session

    @asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[SourceResponse]:
        """
        Issue a GET for url and yield the response once headers arrive.

        Raises:
            UpstreamFetchError: On a non-2xx status, a transport failure, or an
                oversized declared length
        """
        session = await self._ensure_session()
        start_time = time.time()
        self.stats["requests_made"] += 1

        try:
            async with session.get(url, headers=self.default_headers) as response:
                if not 200 <= response.status < 300:
                    reason = f" {response.reason}" if response.reason else ""
                    logger.warning(f"Source {url} answered {response.status}{reason}")
                    raise UpstreamFetchError(f"fetch failed: {response.status}{reason}", status_code=response.status)

                source = SourceResponse(response, self.settings.max_content_length)

                max_length = self.settings.max_content_length
                if max_length is not None and source.declared_length > max_length:
                    raise ContentTooLargeError(url, source.declared_length, max_length)

                yield source

        except UpstreamFetchError:
            self.stats["requests_failed"] += 1
            raise

        except (ClientError, asyncio.TimeoutError) as e:
            self.stats["requests_failed"] += 1
            logger.error(f"Fetching {url} failed: {e}")
            raise UpstreamFetchError(f"fetch failed: {type(e).__name__}: {e}", original_error=e) from e

        self.stats["requests_successful"] += 1
        self.stats["total_response_time"] += time.time() - start_time

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = self.stats.copy()
        if stats["requests_successful"] > 0:
            stats["average_response_time"] = stats["total_response_time"] / stats["requests_successful"]
        else:
            stats["average_response_time"] = 0
        stats["session_active"] = self._session is not None and not self._session.closed
        return stats
