"""Shared fixtures and in-memory collaborators for the test suite."""

import asyncio
import itertools
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple

import pytest

from fetchvault.schema.download import DEFAULT_CONTENT_TYPE
from fetchvault.transfer.config.settings import TransferSettings
from fetchvault.transfer.core.exceptions import NotFoundError, StorageError, UpstreamFetchError
from fetchvault.transfer.core.types import ObjectMetadata, ProgressCallback
from fetchvault.transfer.state.local_job_store import LocalJobStore
from fetchvault.transfer.storage.base import ObjectStore


class MemoryObjectStore(ObjectStore):
    """Object store keeping payloads in a dict; progress is reported from a worker thread."""

    def __init__(self, chunk_size: int = 256, fail_with: Optional[Exception] = None):
        self.chunk_size = chunk_size
        self.fail_with = fail_with
        self.objects: Dict[str, Tuple[bytes, str]] = {}
        self.reported: List[Tuple[int, int]] = []
        self._signatures = itertools.count(1)

    async def put(
        self,
        key: str,
        content: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
        size: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> str:
        total = size if size is not None else len(content)

        def _upload() -> None:
            sent = 0
            while sent < total:
                sent = min(total, sent + self.chunk_size)
                self.reported.append((sent, total))
                if progress is not None:
                    progress(sent, total)
            if self.fail_with is not None:
                raise self.fail_with

        await asyncio.get_running_loop().run_in_executor(None, _upload)
        self.objects[key] = (content, content_type)
        return f"memory://bucket/{key}"

    async def signed_get(self, key: str, ttl_seconds: int) -> str:
        if key not in self.objects:
            raise StorageError(f"Object not found: {key}", error_code="NoSuchKey")
        return f"https://signed.example/{key}?expires={ttl_seconds}&sig={next(self._signatures)}"

    async def exists(self, key: str) -> bool:
        return key in self.objects

    async def head_metadata(self, key: str) -> ObjectMetadata:
        if key not in self.objects:
            raise NotFoundError(f"Object not found: {key}")
        content, content_type = self.objects[key]
        return ObjectMetadata(size=len(content), content_type=content_type)


class StaticSourceResponse:
    def __init__(self, body: bytes, content_type: Optional[str] = None):
        self.body = body
        self.content_type_header = content_type
        self.declared_length = len(body)

    async def read(self) -> bytes:
        return self.body


class StaticFetcher:
    """Stand-in for SourceFetcher serving fixed responses by URL."""

    def __init__(self, routes: Optional[Dict[str, Tuple[int, bytes, Optional[str]]]] = None):
        self.routes = routes or {}
        self.requested: List[str] = []

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @asynccontextmanager
    async def open(self, url: str):
        self.requested.append(url)
        status, body, content_type = self.routes.get(url, (404, b"", None))
        if not 200 <= status < 300:
            raise UpstreamFetchError(f"fetch failed: {status} Not Found", status_code=status)
        yield StaticSourceResponse(body, content_type)


class RecordingJobStore(LocalJobStore):
    """LocalJobStore that remembers every partial update it applied."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.updates: List[Dict[str, Any]] = []

    async def update_fields(self, download_id: str, **fields: Any):
        job = await super().update_fields(download_id, **fields)
        self.updates.append(dict(fields))
        return job

    def progress_writes(self) -> List[int]:
        return [update["progress"] for update in self.updates if "progress" in update]


ZIP_URL = "https://files.example.com/releases/archive.zip"
MISSING_URL = "https://files.example.com/missing.pdf"


@pytest.fixture
def settings() -> TransferSettings:
    return TransferSettings(
        _env_file=None,
        environment="dev",
        store_backend="local",
        json_logs=False,
        s3_endpoint_url="http://localhost:4566",
        s3_access_key_id="test",
        s3_secret_access_key="test",
        s3_bucket="r2c",
        shutdown_grace_seconds=0.5,
    )


@pytest.fixture
def job_store() -> RecordingJobStore:
    return RecordingJobStore()


@pytest.fixture
def object_store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
def fetcher() -> StaticFetcher:
    return StaticFetcher(
        {
            ZIP_URL: (200, bytes(range(256)) * 8, None),
        }
    )
