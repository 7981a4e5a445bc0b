"""
Core types for the transfer pipeline.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel

# Receives cumulative (bytes_sent, bytes_total) from an upload transport
ProgressCallback = Callable[[int, int], None]


class TransferErrorType(str, Enum):
    """Category of a transfer failure; drives HTTP status codes and log fields"""

    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    UPSTREAM_FETCH = "upstream_fetch"
    STORAGE = "storage"
    RECORD_STORE = "record_store"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class ObjectMetadata(BaseModel):
    """Result of a HEAD probe against the object store"""

    size: int
    content_type: Optional[str] = None
    modified: Optional[datetime] = None


class FetchedResource(BaseModel):
    """A fully buffered source body and its resolved content type"""

    content: bytes = b""
    content_type: str
    declared_length: int = 0

    @property
    def size(self) -> int:
        return len(self.content)


# Progress checkpoints written by the pipeline
PROGRESS_STARTED = 5
PROGRESS_HEADERS_READ = 10
PROGRESS_BUFFERED = 40
PROGRESS_UPLOAD_CEILING = 90
PROGRESS_COMPLETED = 100
