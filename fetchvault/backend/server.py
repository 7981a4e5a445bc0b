import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..schema import ErrorResponse, HealthStatus
from ..transfer.config.settings import TransferSettings, get_cached_settings
from ..transfer.core.exceptions import TransferError
from ..transfer.core.types import TransferErrorType
from ..transfer.http_client.client import SourceFetcher
from ..transfer.pipeline.fetch_store import FetchStorePipeline
from ..transfer.service import BackgroundDispatcher, DownloadService
from ..transfer.state import JobStore, create_job_store
from ..transfer.storage import ObjectStore, S3ObjectStore
from ..transfer.utils.logging import setup_transfer_logger
from .routers.downloads import router as downloads_router

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    TransferErrorType.INVALID_INPUT: 400,
    TransferErrorType.NOT_FOUND: 404,
    TransferErrorType.UNAVAILABLE: 503,
}


def status_code_for(error: TransferError) -> int:
    return ERROR_STATUS_CODES.get(error.error_type, 500)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump(exclude_none=True))


def create_app(
    settings: Optional[TransferSettings] = None,
    store: Optional[JobStore] = None,
    object_store: Optional[ObjectStore] = None,
    fetcher: Optional[SourceFetcher] = None,
) -> FastAPI:
    """
    Build the API application.

    Collaborators not passed in are constructed from settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        # Startup
        app_settings = settings or get_cached_settings()
        setup_transfer_logger("fetchvault", level=app_settings.log_level, json_logs=app_settings.json_logs)

        job_store = store or create_job_store(app_settings)
        await job_store.initialize()

        objects = object_store or S3ObjectStore(app_settings)
        source_fetcher = fetcher or SourceFetcher(app_settings)
        await source_fetcher.initialize()

        dispatcher = BackgroundDispatcher(job_store, app_settings.shutdown_grace_seconds)
        pipeline = FetchStorePipeline(job_store, objects, source_fetcher, app_settings)

        app.state.settings = app_settings
        app.state.job_store = job_store
        app.state.object_store = objects
        app.state.dispatcher = dispatcher
        app.state.download_service = DownloadService(job_store, objects, pipeline, dispatcher, app_settings)
        logger.info(f"Download service started (environment={app_settings.environment})")

        yield

        # Shutdown
        await dispatcher.shutdown()
        await source_fetcher.close()
        await job_store.close()
        app.state.download_service = None
        logger.info("Download service shutdown completed")

    app = FastAPI(title="fetchvault", version=__version__, lifespan=lifespan)

    app.include_router(downloads_router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TransferError)
    async def transfer_error_handler(_: Request, exc: TransferError) -> JSONResponse:
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error(f"Request failed: {type(exc).__name__}: {exc}")
        return error_response(status_code, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        return error_response(400, "Invalid request body")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(exc.status_code, str(exc.detail))

    @app.get("/health")
    async def health_check(request: Request) -> HealthStatus:
        """Health of the record store and the object store."""
        try:
            record_store = await request.app.state.job_store.health_check()
            object_storage = await request.app.state.object_store.health_check()
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return HealthStatus(
                status="down",
                version=__version__,
                record_store="down",
                object_store="down",
                active_downloads=request.app.state.dispatcher.active_count,
            )

        record_store_ok = record_store.get("status") == "healthy"
        object_store_ok = object_storage.get("status") == "healthy"

        if record_store_ok and object_store_ok:
            status = "ok"
        elif record_store_ok:
            status = "degraded"
        else:
            status = "down"

        return HealthStatus(
            status=status,
            version=__version__,
            record_store="ok" if record_store_ok else "down",
            object_store="ok" if object_store_ok else "down",
            active_downloads=request.app.state.dispatcher.active_count,
        )

    return app


app = create_app()
