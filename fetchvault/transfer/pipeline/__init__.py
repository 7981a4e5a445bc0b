"""
Fetch-then-store pipeline for download jobs.
"""

from .content_types import EXTENSION_CONTENT_TYPES, resolve_content_type
from .fetch_store import FetchStorePipeline
from .progress import UploadProgressWriter, upload_progress_percent

__all__ = [
    "FetchStorePipeline",
    "UploadProgressWriter",
    "upload_progress_percent",
    "EXTENSION_CONTENT_TYPES",
    "resolve_content_type",
]
