"""
Supervised fire-and-forget execution of pipelines.

Tasks are owned by the dispatcher rather than the request that started
them, so a job keeps running after its HTTP response has been sent.
"""

import asyncio
import logging
from typing import Any, Coroutine, Dict, List, Optional

from ...schema.download import DownloadStatus
from ..pipeline.fetch_store import failure_message
from ..state.base import JobStore

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    """
    Runs one asyncio task per download and keeps a strong reference to it
    until it finishes.

    An exception escaping a task is logged and recorded on its job as a
    failure. shutdown() waits for running tasks up to a grace period and
    cancels the rest.
    """

    def __init__(self, store: JobStore, shutdown_grace_seconds: float = 5.0):
        self.store = store
        self.shutdown_grace_seconds = shutdown_grace_seconds

        self._tasks: Dict[str, "asyncio.Task[Any]"] = {}
        self._accepting = True

        self.stats = {
            "submitted": 0,
            "finished": 0,
            "escaped_errors": 0,
            "cancelled": 0,
        }

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    @property
    def accepting(self) -> bool:
        return self._accepting

    def submit(self, download_id: str, coro: Coroutine[Any, Any, Any]) -> "asyncio.Task[Any]":
        """Schedule coro for download_id on the running loop."""
        if not self._accepting:
            coro.close()
            raise RuntimeError("Dispatcher is shutting down")

        task = asyncio.create_task(self._supervise(download_id, coro), name=f"download-{download_id}")
        self._tasks[download_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(download_id, None))

        self.stats["submitted"] += 1
        logger.debug(f"Dispatched download {download_id} ({self.active_count} active)")
        return task

    async def _supervise(self, download_id: str, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            self.stats["cancelled"] += 1
            logger.warning(f"Download {download_id} cancelled before finishing")
            await self._record_failure(download_id, "cancelled during shutdown")
            raise
        except Exception as e:
            self.stats["escaped_errors"] += 1
            logger.error(f"Download {download_id} crashed: {e}", exc_info=True)
            await self._record_failure(download_id, failure_message(e))
        finally:
            self.stats["finished"] += 1

    async def _record_failure(self, download_id: str, message: str) -> None:
        try:
            job = await self.store.get(download_id)
            if job is None or job.status.is_terminal:
                return
            await self.store.update_fields(download_id, status=DownloadStatus.FAILED, error=message)
        except Exception as e:
            logger.error(f"Could not record failure for download {download_id}: {e}")

    async def join(self) -> None:
        """Wait for every task submitted so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self, grace_seconds: Optional[float] = None) -> None:
        self._accepting = False
        grace = self.shutdown_grace_seconds if grace_seconds is None else grace_seconds

        tasks: List["asyncio.Task[Any]"] = list(self._tasks.values())
        if not tasks:
            return

        logger.info(f"Waiting up to {grace}s for {len(tasks)} running downloads")
        _, pending = await asyncio.wait(tasks, timeout=grace)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(f"Cancelled {len(pending)} downloads at shutdown")

    def get_stats(self) -> Dict[str, Any]:
        return {**self.stats, "active": self.active_count, "accepting": self._accepting}
