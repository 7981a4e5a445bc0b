"""
DynamoDB models for download job records.

One item per job keyed by download_id. A global secondary index on a
constant record_type plus created_at gives newest-first listings without
a table scan.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pynamodb.attributes import NumberAttribute, UnicodeAttribute, UTCDateTimeAttribute
from pynamodb.indexes import AllProjection, GlobalSecondaryIndex
from pynamodb.models import Model

from ...schema.download import DEFAULT_CONTENT_TYPE, DownloadJob, DownloadStatus
from ..config.settings import TransferSettings, get_cached_settings

RECORD_TYPE = "download"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CreatedAtIndex(GlobalSecondaryIndex["DownloadModel"]):
    """
    GSI for listing jobs by creation time.

    Every item carries the same record_type so the whole table is one
    partition of this index, sorted by created_at.
    """

    class Meta:
        index_name = "CreatedAtIndex"
        projection = AllProjection()

    record_type = UnicodeAttribute(hash_key=True)
    created_at = UTCDateTimeAttribute(range_key=True)


class DownloadModel(Model):
    """DynamoDB item for a download job."""

    class Meta:  # type: ignore[reportIncompatibleVariableOverride]
        table_name = "fetchvault-downloads"
        region = "us-east-1"

        # Set to the LocalStack endpoint by initialize_models()
        host = None

        billing_mode = "PAY_PER_REQUEST"

    download_id = UnicodeAttribute(hash_key=True)
    record_type = UnicodeAttribute(default=RECORD_TYPE)

    # Immutable after creation
    source_url = UnicodeAttribute()
    file_name = UnicodeAttribute()
    storage_key = UnicodeAttribute()

    # Pipeline state
    file_size = NumberAttribute(default=0)
    content_type = UnicodeAttribute(default=DEFAULT_CONTENT_TYPE)
    status = UnicodeAttribute(default=DownloadStatus.PENDING.value)
    progress = NumberAttribute(default=0)
    error = UnicodeAttribute(null=True)
    storage_locator = UnicodeAttribute(null=True)

    download_count = NumberAttribute(default=0)

    # Audit fields
    created_at = UTCDateTimeAttribute(default=_utcnow)
    updated_at = UTCDateTimeAttribute(default=_utcnow)

    created_at_index = CreatedAtIndex()

    @classmethod
    def from_job(cls, job: DownloadJob) -> "DownloadModel":
        now = _utcnow()
        return cls(
            download_id=job.download_id,
            record_type=RECORD_TYPE,
            source_url=job.source_url,
            file_name=job.file_name,
            storage_key=job.storage_key,
            file_size=job.file_size,
            content_type=job.content_type,
            status=job.status.value,
            progress=job.progress,
            error=job.error,
            storage_locator=job.storage_locator or None,
            download_count=job.download_count,
            created_at=job.created_at or now,
            updated_at=job.updated_at or now,
        )

    def to_job(self) -> DownloadJob:
        return DownloadJob(
            download_id=self.download_id,
            source_url=self.source_url,
            file_name=self.file_name,
            storage_key=self.storage_key,
            file_size=int(self.file_size or 0),
            content_type=self.content_type or DEFAULT_CONTENT_TYPE,
            status=DownloadStatus(self.status),
            progress=int(self.progress or 0),
            error=self.error,
            storage_locator=self.storage_locator or "",
            download_count=int(self.download_count or 0),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


def initialize_models(settings: Optional[TransferSettings] = None) -> None:
    """
    Point the models at the configured table, region and endpoint.

    Must run before the first request; PynamoDB caches its connection on
    the model class, so the cache is dropped here as well.
    """
    settings = settings or get_cached_settings()

    DownloadModel.Meta.table_name = settings.dynamodb_table
    DownloadModel.Meta.region = settings.aws_region
    DownloadModel.Meta.host = settings.localstack_endpoint  # type: ignore[assignment]

    if settings.aws_access_key_id and settings.aws_secret_access_key:
        DownloadModel.Meta.aws_access_key_id = settings.aws_access_key_id  # type: ignore[attr-defined]
        DownloadModel.Meta.aws_secret_access_key = settings.aws_secret_access_key  # type: ignore[attr-defined]

    DownloadModel._connection = None  # type: ignore[attr-defined]


def create_tables_if_not_exist() -> bool:
    """Create the jobs table if missing. Returns True when it was created."""
    if DownloadModel.exists():
        return False
    DownloadModel.create_table(billing_mode="PAY_PER_REQUEST", wait=True)
    return True


if __name__ == "__main__":
    # CLI utility for table management
    import sys

    def main() -> None:
        if len(sys.argv) < 2:
            print("Usage: python -m fetchvault.transfer.state.models [create|describe|delete]")
            sys.exit(1)

        command = sys.argv[1]

        initialize_models()

        if command == "create":
            print("Creating DynamoDB table...")
            created = create_tables_if_not_exist()
            print("Table created!" if created else "Table already exists")

        elif command == "describe":
            print("Download Jobs Table:")
            print(f"  Table name: {DownloadModel.Meta.table_name}")
            print(f"  Exists: {DownloadModel.exists()}")

        elif command == "delete":
            print("Deleting DynamoDB table...")
            if DownloadModel.exists():
                DownloadModel.delete_table()
            print("Table deleted!")

        else:
            print(f"Unknown command: {command}")
            sys.exit(1)

    main()
