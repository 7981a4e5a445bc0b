from .common import CamelModel, ErrorResponse, HealthStatus
from .download import (
    DEFAULT_CONTENT_TYPE,
    ConfirmDownloadResponse,
    CreateDownloadRequest,
    CreateDownloadResponse,
    DownloadJob,
    DownloadListResponse,
    DownloadStatus,
    DownloadView,
)

__all__ = [
    # common
    "CamelModel",
    "ErrorResponse",
    "HealthStatus",
    # download
    "DEFAULT_CONTENT_TYPE",
    "DownloadStatus",
    "DownloadJob",
    "DownloadView",
    "CreateDownloadRequest",
    "CreateDownloadResponse",
    "DownloadListResponse",
    "ConfirmDownloadResponse",
]
