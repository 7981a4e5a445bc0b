"""
Upload progress accounting.

The object store reports bytes from transfer threads; UploadProgressWriter
hops those reports onto the event loop and a single consumer writes them,
so a job's progress writes land in strictly increasing order.
"""

import asyncio
import logging
import math
import threading
from typing import Optional

from ..core.types import PROGRESS_BUFFERED, PROGRESS_UPLOAD_CEILING
from ..state.base import JobStore

logger = logging.getLogger(__name__)

UPLOAD_PROGRESS_SPAN = 50


def upload_progress_percent(bytes_sent: int, bytes_total: int) -> int:
    """Map upload bytes onto the 40..90 band of overall job progress"""
    if bytes_total <= 0:
        return PROGRESS_BUFFERED
    fraction = min(max(bytes_sent, 0), bytes_total) / bytes_total
    # Half-up rounding
    percent = PROGRESS_BUFFERED + math.floor(fraction * UPLOAD_PROGRESS_SPAN + 0.5)
    return min(percent, PROGRESS_UPLOAD_CEILING)


class UploadProgressWriter:
    """
    Progress callback for ObjectStore.put that persists coalesced values.

    Call start() on the event loop before the upload and aclose() after it;
    aclose() waits until every value reported so far has been written.
    """

    def __init__(self, store: JobStore, download_id: str, floor: int = PROGRESS_BUFFERED):
        self.store = store
        self.download_id = download_id

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: "asyncio.Queue[Optional[int]]" = asyncio.Queue()
        self._task: Optional["asyncio.Task[None]"] = None

        self._lock = threading.Lock()
        self._last_reported = floor
        self.last_written = floor
        self.writes = 0

    def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._task = asyncio.create_task(self._drain())

    def __call__(self, bytes_sent: int, bytes_total: int) -> None:
        percent = upload_progress_percent(bytes_sent, bytes_total)

        with self._lock:
            if percent <= self._last_reported or self._loop is None:
                return
            self._last_reported = percent
            self._loop.call_soon_threadsafe(self._queue.put_nowait, percent)

    async def _drain(self) -> None:
        closing = False
        while not closing:
            value = await self._queue.get()
            if value is None:
                break

            # Only the newest value matters once several are waiting
            while not self._queue.empty():
                queued = self._queue.get_nowait()
                if queued is None:
                    closing = True
                    break
                value = max(value, queued)

            if value <= self.last_written:
                continue

            try:
                await self.store.update_fields(self.download_id, progress=value)
            except Exception as e:
                logger.warning(f"Progress update to {value}% failed for {self.download_id}: {e}")
                continue

            self.last_written = value
            self.writes += 1

    async def aclose(self) -> None:
        if self._task is None or self._loop is None:
            return
        # Queued behind any values already scheduled from transfer threads
        self._loop.call_soon(self._queue.put_nowait, None)
        await self._task
        self._task = None
        logger.debug(f"Upload progress for {self.download_id}: {self.writes} writes, last {self.last_written}%")
