from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .common import CamelModel

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class DownloadStatus(str, Enum):
    """Lifecycle state of a download job"""

    PENDING = "pending"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DownloadStatus.COMPLETED, DownloadStatus.FAILED)


class DownloadJob(CamelModel):
    """One submitted URL-to-storage transfer and its tracked state."""

    download_id: str
    source_url: str
    file_name: str
    storage_key: str
    file_size: int = 0
    content_type: str = DEFAULT_CONTENT_TYPE
    status: DownloadStatus = DownloadStatus.PENDING
    progress: int = Field(0, ge=0, le=100)
    error: Optional[str] = None
    download_count: int = 0
    storage_locator: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DownloadView(DownloadJob):
    download_url: Optional[str] = None


class CreateDownloadRequest(BaseModel):
    # Optional so a missing url is reported as a 400 by the handler, not a 422
    url: Optional[str] = None


class CreateDownloadResponse(CamelModel):
    success: bool = True
    download_id: str
    status: DownloadStatus = DownloadStatus.PENDING
    message: str = "Download started"


class DownloadListResponse(CamelModel):
    downloads: List[DownloadJob] = Field(default_factory=list)


class ConfirmDownloadResponse(CamelModel):
    success: bool = True
    download_url: str
    download_count: int
