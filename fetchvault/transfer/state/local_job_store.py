"""
Local job record store for development and testing.

Provides the same interface as DynamoDBJobStore without AWS. Records live in
memory and can be mirrored to a JSON file so they survive restarts.
"""

import json
import logging
import shutil
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ...schema.download import DownloadJob
from ..core.exceptions import DuplicateIdError, NotFoundError, RecordStoreError
from .base import JobStore, normalize_value, validate_counter, validate_update

logger = logging.getLogger(__name__)


class LocalJobStore(JobStore):
    """
    In-process job store guarded by a lock.

    Each operation reads and writes under the lock, which makes partial
    updates and conditional increments atomic with respect to each other.
    """

    def __init__(self, state_file: Optional[Path] = None):
        self.state_file = state_file
        self.backup_file = state_file.with_name(f"{state_file.stem}_backup.json") if state_file else None

        self._jobs: Dict[str, DownloadJob] = {}
        self._lock = threading.Lock()

        if self.state_file is not None:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            self._jobs = self._read_states()

        logger.info(
            f"Initialized local job store ({len(self._jobs)} records"
            f"{', file ' + str(self.state_file) if self.state_file else ''})"
        )

    def _read_states(self) -> Dict[str, DownloadJob]:
        """Read all job records from the state file"""
        if self.state_file is None or not self.state_file.exists():
            return {}

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            return {download_id: DownloadJob.model_validate(record) for download_id, record in data.items()}
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(f"Error reading state file {self.state_file}: {e}")
            return {}

    def _write_states(self) -> None:
        """Write all job records to the state file"""
        if self.state_file is None:
            return

        try:
            if self.state_file.exists() and self.backup_file is not None:
                shutil.copy2(self.state_file, self.backup_file)

            with open(self.state_file, "w", encoding="utf-8") as f:
                json.dump(
                    {download_id: job.model_dump(mode="json") for download_id, job in self._jobs.items()},
                    f,
                    indent=2,
                )
        except OSError as e:
            logger.error(f"Error writing state file {self.state_file}: {e}")
            raise RecordStoreError(f"Failed to persist local state: {e}", e) from e

    async def create(self, job: DownloadJob) -> DownloadJob:
        now = datetime.now(timezone.utc)

        with self._lock:
            if job.download_id in self._jobs:
                raise DuplicateIdError(f"Download {job.download_id} already exists")

            stored = job.model_copy(update={"created_at": job.created_at or now, "updated_at": now})
            self._jobs[job.download_id] = stored
            self._write_states()

        logger.info(f"Created download record {job.download_id}")
        return stored.model_copy()

    async def get(self, download_id: str) -> Optional[DownloadJob]:
        with self._lock:
            job = self._jobs.get(download_id)
            return job.model_copy() if job is not None else None

    async def update_fields(self, download_id: str, **fields: Any) -> DownloadJob:
        values = validate_update(fields)

        with self._lock:
            current = self._jobs.get(download_id)
            if current is None:
                raise NotFoundError(f"Download {download_id} not found")

            values["updated_at"] = datetime.now(timezone.utc)
            updated = DownloadJob.model_validate({**current.model_dump(), **values})
            self._jobs[download_id] = updated
            self._write_states()

        return updated.model_copy()

    async def increment_counter(
        self,
        download_id: str,
        field: str,
        delta: int = 1,
        match: Optional[Dict[str, Any]] = None,
    ) -> DownloadJob:
        validate_counter(field)

        with self._lock:
            current = self._jobs.get(download_id)
            if current is None:
                raise NotFoundError(f"Download {download_id} not found or condition not met")

            for name, expected in (match or {}).items():
                if normalize_value(getattr(current, name)) != normalize_value(expected):
                    raise NotFoundError(f"Download {download_id} not found or condition not met")

            updated = current.model_copy(
                update={field: getattr(current, field) + delta, "updated_at": datetime.now(timezone.utc)}
            )
            self._jobs[download_id] = updated
            self._write_states()

        return updated.model_copy()

    async def list(self, limit: int = 50, newest_first: bool = True) -> List[DownloadJob]:
        epoch = datetime.min.replace(tzinfo=timezone.utc)

        with self._lock:
            jobs = sorted(
                self._jobs.values(),
                key=lambda job: job.created_at or epoch,
                reverse=newest_first,
            )
            return [job.model_copy() for job in jobs[:limit]]

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "records": len(self._jobs), "state_file": str(self.state_file or "")}
