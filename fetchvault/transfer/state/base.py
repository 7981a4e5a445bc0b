"""
Job record store interface.

Every state transition goes through update_fields or increment_counter so a
reader never observes a half-applied change.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional

from ...schema.download import DownloadJob

# Fields the pipeline may change after creation
MUTABLE_FIELDS = frozenset({"file_size", "content_type", "status", "progress", "error", "storage_locator"})

# Fields that only move through increment_counter
COUNTER_FIELDS = frozenset({"download_count"})


def normalize_value(value: Any) -> Any:
    """Store enums by value"""
    if isinstance(value, Enum):
        return value.value
    return value


def validate_update(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Reject updates to immutable or unknown fields.

    Raises:
        ValueError: If a field may not be updated
    """
    if not fields:
        raise ValueError("update_fields requires at least one field")
    invalid = set(fields) - MUTABLE_FIELDS
    if invalid:
        raise ValueError(f"Fields cannot be updated: {sorted(invalid)}")
    return {name: normalize_value(value) for name, value in fields.items()}


def validate_counter(field: str) -> None:
    if field not in COUNTER_FIELDS:
        raise ValueError(f"Field is not a counter: {field}")


class JobStore(ABC):
    """Durable mapping from download_id to job state."""

    async def initialize(self) -> None:
        """Prepare backing storage (create tables, load files)."""
        return None

    async def close(self) -> None:
        return None

    @abstractmethod
    async def create(self, job: DownloadJob) -> DownloadJob:
        """
        Persist a new job.

        Raises:
            DuplicateIdError: If the id already exists
        """
        ...

    @abstractmethod
    async def get(self, download_id: str) -> Optional[DownloadJob]:
        ...

    @abstractmethod
    async def update_fields(self, download_id: str, **fields: Any) -> DownloadJob:
        """
        Atomically apply a partial update and refresh updated_at.

        Raises:
            NotFoundError: If the job does not exist
        """
        ...

    @abstractmethod
    async def increment_counter(
        self,
        download_id: str,
        field: str,
        delta: int = 1,
        match: Optional[Dict[str, Any]] = None,
    ) -> DownloadJob:
        """
        Atomically add delta to a counter if every match condition holds.

        Raises:
            NotFoundError: If the job is missing or a condition is unmet
        """
        ...

    @abstractmethod
    async def list(self, limit: int = 50, newest_first: bool = True) -> List[DownloadJob]:
        ...

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy"}
