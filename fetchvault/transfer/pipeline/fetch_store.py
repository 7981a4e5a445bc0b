"""
Fetch-then-store pipeline.

Drives one job from pending through downloading to a terminal state:
fetch the source URL, classify it, buffer the body, upload it to the
object store, then record the outcome.
"""

import logging
import time
from typing import Optional

from ...schema.download import DownloadJob, DownloadStatus
from ..config.settings import TransferSettings, get_cached_settings
from ..core.exceptions import TransferError
from ..core.types import (
    PROGRESS_BUFFERED,
    PROGRESS_COMPLETED,
    PROGRESS_HEADERS_READ,
    PROGRESS_STARTED,
    FetchedResource,
    TransferErrorType,
)
from ..http_client.client import SourceFetcher
from ..state.base import JobStore
from ..storage.base import ObjectStore
from ..utils.logging import get_transfer_logger, log_transfer_event
from .content_types import resolve_content_type
from .progress import UploadProgressWriter

logger = logging.getLogger(__name__)
event_logger = get_transfer_logger(__name__)


def failure_message(error: Exception) -> str:
    message = str(error)
    if isinstance(error, TransferError):
        return message or type(error).__name__
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


def error_type_for(error: Exception) -> TransferErrorType:
    if isinstance(error, TransferError):
        return error.error_type
    return TransferErrorType.UNKNOWN


class FetchStorePipeline:
    """
    Runs the transfer for a job already persisted as pending.

    Failures inside the transfer are recorded on the job rather than raised.
    Only record store failures while writing state escape run().
    """

    def __init__(
        self,
        store: JobStore,
        object_store: ObjectStore,
        fetcher: SourceFetcher,
        settings: Optional[TransferSettings] = None,
    ):
        self.store = store
        self.object_store = object_store
        self.fetcher = fetcher
        self.settings = settings or get_cached_settings()

    async def run(self, job: DownloadJob) -> DownloadJob:
        download_id = job.download_id
        start_time = time.time()

        # Not guarded: if this write fails the job is still pending and the
        # dispatcher records it as failed
        job = await self.store.update_fields(
            download_id, status=DownloadStatus.DOWNLOADING, progress=PROGRESS_STARTED
        )
        log_transfer_event(event_logger, "transfer_started", download_id, source_url=job.source_url)

        try:
            resource = await self._fetch(job)
            locator = await self._upload(job, resource)
        except Exception as e:
            return await self._fail(job, e, time.time() - start_time)

        job = await self.store.update_fields(
            download_id,
            status=DownloadStatus.COMPLETED,
            progress=PROGRESS_COMPLETED,
            storage_locator=locator,
            file_size=resource.size,
        )
        log_transfer_event(
            event_logger,
            "transfer_completed",
            download_id,
            file_size=resource.size,
            content_type=resource.content_type,
            duration=round(time.time() - start_time, 3),
        )
        return job

    async def _fetch(self, job: DownloadJob) -> FetchedResource:
        async with self.fetcher.open(job.source_url) as response:
            declared_length = response.declared_length
            content_type = resolve_content_type(response.content_type_header, job.file_name)

            await self.store.update_fields(
                job.download_id,
                file_size=declared_length,
                content_type=content_type,
                progress=PROGRESS_HEADERS_READ,
            )

            content = await response.read()

        await self.store.update_fields(job.download_id, progress=PROGRESS_BUFFERED)
        logger.debug(f"Buffered {len(content)} bytes for {job.download_id} (declared {declared_length})")

        return FetchedResource(
            content=content,
            content_type=content_type,
            declared_length=declared_length,
        )

    async def _upload(self, job: DownloadJob, resource: FetchedResource) -> str:
        writer = UploadProgressWriter(self.store, job.download_id)
        writer.start()
        try:
            return await self.object_store.put(
                job.storage_key,
                resource.content,
                content_type=resource.content_type,
                size=resource.size,
                progress=writer,
            )
        finally:
            await writer.aclose()

    async def _fail(self, job: DownloadJob, error: Exception, duration: float) -> DownloadJob:
        message = failure_message(error)
        log_transfer_event(
            event_logger,
            "transfer_failed",
            job.download_id,
            error=message,
            error_type=error_type_for(error).value,
            exception=type(error).__name__,
            duration=round(duration, 3),
        )
        return await self.store.update_fields(job.download_id, status=DownloadStatus.FAILED, error=message)
