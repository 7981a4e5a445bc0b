"""
Download job API router.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from ...schema.download import (
    ConfirmDownloadResponse,
    CreateDownloadRequest,
    CreateDownloadResponse,
    DownloadListResponse,
    DownloadView,
)
from ...transfer.core.exceptions import NotFoundError, TransferError
from ...transfer.service import DownloadService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/download", tags=["download"])


def get_download_service(request: Request) -> DownloadService:
    """Get the download service built at startup."""
    service = getattr(request.app.state, "download_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Download service not initialized")
    return service


@router.post("", response_model=CreateDownloadResponse, status_code=201)
async def create_download(
    body: CreateDownloadRequest,
    service: DownloadService = Depends(get_download_service),
) -> CreateDownloadResponse:
    """
    Submit a URL to be fetched into object storage.

    Returns immediately; poll GET /download/{id} for progress.
    """
    try:
        job = await service.create_job(body.url)
        return CreateDownloadResponse(download_id=job.download_id, status=job.status)

    except TransferError:
        raise
    except Exception as e:
        logger.error(f"Creating download for '{body.url}' failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to start download: {str(e)}")


@router.get("", response_model=DownloadListResponse)
async def list_downloads(service: DownloadService = Depends(get_download_service)) -> DownloadListResponse:
    """Most recent downloads, newest first."""
    try:
        jobs = await service.list_jobs()
        return DownloadListResponse(downloads=jobs)

    except TransferError:
        raise
    except Exception as e:
        logger.error(f"Listing downloads failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to list downloads: {str(e)}")


@router.get("/{download_id}", response_model=DownloadView)
async def get_download(download_id: str, service: DownloadService = Depends(get_download_service)) -> DownloadView:
    try:
        return await service.get_job(download_id)

    except NotFoundError as e:
        raise NotFoundError("Download not found", e) from e
    except TransferError:
        raise
    except Exception as e:
        logger.error(f"Reading download {download_id} failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to read download: {str(e)}")


@router.post("/{download_id}", response_model=ConfirmDownloadResponse)
async def confirm_download(
    download_id: str,
    service: DownloadService = Depends(get_download_service),
) -> ConfirmDownloadResponse:
    """
    Record a download of a completed job and return a fresh signed link.
    """
    try:
        download_url, download_count = await service.confirm_download(download_id)
        return ConfirmDownloadResponse(download_url=download_url, download_count=download_count)

    except NotFoundError as e:
        raise NotFoundError("Download not found or not completed", e) from e
    except TransferError:
        raise
    except Exception as e:
        logger.error(f"Confirming download {download_id} failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to confirm download: {str(e)}")
