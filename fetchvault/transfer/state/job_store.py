"""
DynamoDB-backed job record store.

Partial updates and counter increments are single UpdateItem calls guarded
by condition expressions, so concurrent readers never see a torn write.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ...schema.download import DownloadJob
from ..config.settings import TransferSettings
from ..core.exceptions import DuplicateIdError, NotFoundError
from .base import JobStore, normalize_value, validate_counter, validate_update
from .client import ConditionalCheckFailedError, DynamoDBClient
from .models import RECORD_TYPE, DownloadModel

logger = logging.getLogger(__name__)

# Empty values are stored as absent attributes
_NULLABLE_FIELDS = ("error", "storage_locator")


class DynamoDBJobStore(JobStore):
    """
    Job record store on a single DynamoDB table.
    """

    def __init__(self, settings: TransferSettings, client: Optional[DynamoDBClient] = None):
        self.settings = settings
        self.client = client or DynamoDBClient(settings)

        self.stats = {
            "jobs_created": 0,
            "updates_applied": 0,
            "conditional_misses": 0,
        }

    async def initialize(self) -> None:
        await self.client.create_table_if_not_exists()

    async def create(self, job: DownloadJob) -> DownloadJob:
        item = DownloadModel.from_job(job)

        try:
            await self.client.put_item(item, condition=DownloadModel.download_id.does_not_exist())
        except ConditionalCheckFailedError as e:
            raise DuplicateIdError(f"Download {job.download_id} already exists", e) from e

        self.stats["jobs_created"] += 1
        logger.info(f"Created download record {job.download_id}")
        return item.to_job()

    async def get(self, download_id: str) -> Optional[DownloadJob]:
        item = await self.client.get_item(DownloadModel, download_id)
        if item is None:
            return None
        return item.to_job()

    async def update_fields(self, download_id: str, **fields: Any) -> DownloadJob:
        values = validate_update(fields)
        item = DownloadModel(download_id)

        actions = [DownloadModel.updated_at.set(datetime.now(timezone.utc))]
        for name, value in values.items():
            attribute = getattr(DownloadModel, name)
            if value is None or (value == "" and name in _NULLABLE_FIELDS):
                actions.append(attribute.remove())
            else:
                actions.append(attribute.set(value))

        try:
            await self.client.update_item(item, actions, condition=DownloadModel.download_id.exists())
        except ConditionalCheckFailedError as e:
            raise NotFoundError(f"Download {download_id} not found", e) from e

        self.stats["updates_applied"] += 1
        return item.to_job()

    async def increment_counter(
        self,
        download_id: str,
        field: str,
        delta: int = 1,
        match: Optional[Dict[str, Any]] = None,
    ) -> DownloadJob:
        validate_counter(field)
        item = DownloadModel(download_id)

        condition = DownloadModel.download_id.exists()
        for name, expected in (match or {}).items():
            condition = condition & (getattr(DownloadModel, name) == normalize_value(expected))

        actions = [
            getattr(DownloadModel, field).add(delta),
            DownloadModel.updated_at.set(datetime.now(timezone.utc)),
        ]

        try:
            await self.client.update_item(item, actions, condition=condition)
        except ConditionalCheckFailedError as e:
            self.stats["conditional_misses"] += 1
            raise NotFoundError(f"Download {download_id} not found or condition not met", e) from e

        self.stats["updates_applied"] += 1
        return item.to_job()

    async def list(self, limit: int = 50, newest_first: bool = True) -> List[DownloadJob]:
        items = await self.client.query_index(
            DownloadModel.created_at_index,
            RECORD_TYPE,
            limit=limit,
            scan_index_forward=not newest_first,
        )
        return [item.to_job() for item in items]

    async def health_check(self) -> Dict[str, Any]:
        return await self.client.health_check()
