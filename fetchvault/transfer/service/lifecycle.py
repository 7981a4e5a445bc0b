"""
Download job lifecycle operations used by the HTTP surface.
"""

import logging
from typing import List, Optional, Tuple

from ...schema.download import DownloadJob, DownloadStatus, DownloadView
from ..config.settings import TransferSettings, get_cached_settings
from ..core.exceptions import NotFoundError, ServiceUnavailableError, StorageError
from ..pipeline.fetch_store import FetchStorePipeline, failure_message
from ..state.base import JobStore
from ..storage.base import ObjectStore
from ..utils.url import build_storage_key, extract_file_name, generate_download_id, validate_source_url
from .dispatcher import BackgroundDispatcher

logger = logging.getLogger(__name__)


class DownloadService:
    """
    Creates jobs, hands them to the pipeline in the background, and serves
    their state and signed download links.
    """

    def __init__(
        self,
        store: JobStore,
        object_store: ObjectStore,
        pipeline: FetchStorePipeline,
        dispatcher: BackgroundDispatcher,
        settings: Optional[TransferSettings] = None,
    ):
        self.store = store
        self.object_store = object_store
        self.pipeline = pipeline
        self.dispatcher = dispatcher
        self.settings = settings or get_cached_settings()

    async def create_job(self, url: object) -> DownloadJob:
        """
        Validate url, persist a pending job and start its pipeline.

        Returns as soon as the record exists; the transfer runs in the background.

        Raises:
            InvalidInputError: If url is missing or not an absolute http(s) URL
            DuplicateIdError: If the generated id collides with an existing job
            ServiceUnavailableError: If the dispatcher no longer accepts work
        """
        source_url = validate_source_url(url)

        download_id = generate_download_id()
        file_name = extract_file_name(source_url)
        job = DownloadJob(
            download_id=download_id,
            source_url=source_url,
            file_name=file_name,
            storage_key=build_storage_key(download_id, file_name),
        )

        if not self.dispatcher.accepting:
            raise ServiceUnavailableError("Download service is shutting down")

        job = await self.store.create(job)
        try:
            self.dispatcher.submit(download_id, self.pipeline.run(job))
        except Exception as e:
            logger.error(f"Could not start pipeline for {download_id}: {e}")
            await self.store.update_fields(download_id, status=DownloadStatus.FAILED, error=failure_message(e))
            raise

        logger.info(f"Accepted download {download_id} for {source_url}")
        return job

    async def get_job(self, download_id: str) -> DownloadView:
        """
        Raises:
            NotFoundError: If the job does not exist
        """
        job = await self.store.get(download_id)
        if job is None:
            raise NotFoundError(f"Download {download_id} not found")

        download_url = None
        if job.status == DownloadStatus.COMPLETED:
            try:
                download_url = await self.object_store.signed_get(
                    job.storage_key, self.settings.signed_url_ttl_seconds
                )
            except StorageError as e:
                logger.warning(f"Could not sign link for {download_id}: {e}")

        return DownloadView(**job.model_dump(), download_url=download_url)

    async def confirm_download(self, download_id: str) -> Tuple[str, int]:
        """
        Count a download of a completed job and mint a fresh link.

        Raises:
            NotFoundError: If the job is missing or not completed
            StorageError: If the link cannot be signed
        """
        job = await self.store.increment_counter(
            download_id,
            "download_count",
            1,
            match={"status": DownloadStatus.COMPLETED},
        )

        download_url = await self.object_store.signed_get(job.storage_key, self.settings.signed_url_ttl_seconds)
        return download_url, job.download_count

    async def list_jobs(self, limit: Optional[int] = None) -> List[DownloadJob]:
        return await self.store.list(limit=limit or self.settings.list_limit, newest_first=True)
