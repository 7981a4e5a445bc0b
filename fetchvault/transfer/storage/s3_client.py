"""
S3-compatible object store client for the transfer service.

Uploads fetched payloads with the boto3 managed transfer, reports upload
progress, and issues presigned download URLs. Works against AWS S3,
Cloudflare R2 and LocalStack.
"""

import asyncio
import io
import logging
import threading
import time
from typing import Any, Dict, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from ...schema.download import DEFAULT_CONTENT_TYPE
from ..config.settings import TransferSettings, get_cached_settings
from ..core.exceptions import NotFoundError, StorageError
from ..core.types import ObjectMetadata, ProgressCallback
from .base import ObjectStore

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", "Unknown"))


class S3ObjectStore(ObjectStore):
    """
    boto3 wrapper implementing the object store gateway.

    Every blocking boto3 call runs in the default executor. The client is
    created lazily so the process starts without credentials; storage calls
    then fail with StorageError. No retries are performed here.
    """

    def __init__(self, settings: Optional[TransferSettings] = None, client: Optional[Any] = None):
        self.settings = settings or get_cached_settings()
        self.bucket = self.settings.s3_bucket
        self._client: Optional[Any] = client

        self.transfer_config = TransferConfig(
            multipart_threshold=self.settings.multipart_chunk_size,
            multipart_chunksize=self.settings.multipart_chunk_size,
            max_concurrency=self.settings.multipart_concurrency,
        )

        self.stats = {
            "uploads_attempted": 0,
            "uploads_successful": 0,
            "uploads_failed": 0,
            "bytes_uploaded": 0,
            "urls_signed": 0,
            "total_upload_time": 0.0,
        }

        if client is None and not self.settings.has_storage_credentials:
            logger.warning(
                "Object store credentials not configured; set FETCHVAULT_S3_ACCESS_KEY_ID "
                "and FETCHVAULT_S3_SECRET_ACCESS_KEY to enable uploads"
            )

    def _ensure_client(self) -> Any:
        """Create the S3 client on first use"""
        if self._client is None:
            if not self.settings.has_storage_credentials:
                raise StorageError("object store credentials not configured", error_code="NoCredentials")

            addressing_style = "path" if self.settings.s3_force_path_style else "auto"
            try:
                self._client = boto3.client(  # type: ignore
                    "s3",
                    endpoint_url=self.settings.s3_endpoint,
                    aws_access_key_id=self.settings.s3_access_key_id,
                    aws_secret_access_key=self.settings.s3_secret_access_key,
                    region_name=self.settings.s3_region,
                    config=Config(
                        signature_version="s3v4",
                        s3={"addressing_style": addressing_style},
                        retries={"max_attempts": 1, "mode": "standard"},
                    ),
                )
            except Exception as e:
                logger.error(f"Failed to create S3 client: {e}")
                raise StorageError(f"S3 client initialization failed: {e}", original_error=e) from e

            logger.debug(f"Created S3 client for endpoint {self.settings.s3_endpoint or 'aws'}")

        return self._client

    def locator_for(self, key: str) -> str:
        """Stable locator for an uploaded key"""
        if self.settings.public_base_url:
            return f"{self.settings.public_base_url.rstrip('/')}/{key}"
        endpoint = self.settings.s3_endpoint
        if endpoint:
            return f"{endpoint}/{self.bucket}/{key}"
        return f"s3://{self.bucket}/{key}"

    async def put(
        self,
        key: str,
        content: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
        size: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> str:
        """
        Upload content to the bucket.

        Args:
            key: Object key
            content: Payload bytes
            content_type: MIME type stored with the object
            size: Total used for progress reporting (defaults to len(content))
            progress: Called with cumulative (bytes_sent, bytes_total) from transfer threads

        Returns:
            Storage locator for the object

        Raises:
            StorageError: If upload fails
        """
        start_time = time.time()
        total = size if size is not None else len(content)
        self.stats["uploads_attempted"] += 1

        def _upload() -> None:
            client = self._ensure_client()
            sent = 0
            lock = threading.Lock()

            def _on_bytes(amount: int) -> None:
                nonlocal sent
                # s3transfer calls back from several worker threads
                with lock:
                    sent += amount
                    if progress is not None:
                        progress(min(sent, total), total)

            client.upload_fileobj(
                io.BytesIO(content),
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type},
                Callback=_on_bytes,
                Config=self.transfer_config,
            )

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, _upload)

        except StorageError:
            self.stats["uploads_failed"] += 1
            raise

        except ClientError as e:
            self.stats["uploads_failed"] += 1
            error_code = _error_code(e)
            logger.error(f"S3 upload failed with error {error_code}: {e}")
            raise StorageError(f"S3 upload failed: {error_code}", error_code, e) from e

        except NoCredentialsError as e:
            self.stats["uploads_failed"] += 1
            logger.error("S3 upload failed due to missing credentials")
            raise StorageError("object store credentials not configured", "NoCredentials", e) from e

        except (S3UploadFailedError, BotoCoreError) as e:
            self.stats["uploads_failed"] += 1
            logger.error(f"S3 upload failed: {e}")
            raise StorageError(f"S3 upload failed: {e}", original_error=e) from e

        except Exception as e:
            self.stats["uploads_failed"] += 1
            logger.error(f"Unexpected error during S3 upload: {e}")
            raise StorageError(f"Unexpected upload error: {e}", original_error=e) from e

        upload_time = time.time() - start_time
        self.stats["uploads_successful"] += 1
        self.stats["bytes_uploaded"] += len(content)
        self.stats["total_upload_time"] += upload_time

        logger.info(
            f"Uploaded s3://{self.bucket}/{key} ({len(content)} bytes, {upload_time:.2f}s)",
            extra={"bucket": self.bucket, "key": key, "size_bytes": len(content), "upload_time": upload_time},
        )

        return self.locator_for(key)

    async def _head(self, key: str) -> Dict[str, Any]:
        def _head_object() -> Dict[str, Any]:
            client = self._ensure_client()
            return client.head_object(Bucket=self.bucket, Key=key)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _head_object)

    async def exists(self, key: str) -> bool:
        """
        Probe for key without reading it.

        Raises:
            StorageError: For failures other than a missing key
        """
        try:
            await self._head(key)
            return True

        except ClientError as e:
            error_code = _error_code(e)
            if error_code in _MISSING_KEY_CODES:
                return False
            raise StorageError(f"Head object failed: {error_code}", error_code, e) from e

        except BotoCoreError as e:
            raise StorageError(f"Head object failed: {e}", original_error=e) from e

    async def head_metadata(self, key: str) -> ObjectMetadata:
        """
        Read size, content type and modification time of an object.

        Raises:
            NotFoundError: If the key does not exist
            StorageError: If the probe fails
        """
        try:
            response = await self._head(key)

        except ClientError as e:
            error_code = _error_code(e)
            if error_code in _MISSING_KEY_CODES:
                raise NotFoundError(f"Object not found: {key}", e) from e
            logger.error(f"S3 head object failed with error {error_code}: {e}")
            raise StorageError(f"Head object failed: {error_code}", error_code, e) from e

        except BotoCoreError as e:
            raise StorageError(f"Head object failed: {e}", original_error=e) from e

        return ObjectMetadata(
            size=int(response.get("ContentLength", 0)),
            content_type=response.get("ContentType"),
            modified=response.get("LastModified"),
        )

    async def signed_get(self, key: str, ttl_seconds: int) -> str:
        """
        Presign a GET for key valid for ttl_seconds from now.

        Raises:
            StorageError: If the key is absent or the URL cannot be signed
        """
        if not await self.exists(key):
            raise StorageError(f"Object not found: {key}", error_code="NoSuchKey")

        def _presign() -> str:
            client = self._ensure_client()
            return client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            )

        try:
            loop = asyncio.get_running_loop()
            url = await loop.run_in_executor(None, _presign)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to sign URL for {key}: {e}")
            raise StorageError(f"Could not sign URL for {key}: {e}", original_error=e) from e

        self.stats["urls_signed"] += 1
        return url

    def get_stats(self) -> Dict[str, Any]:
        """Get object store statistics"""
        stats: Dict[str, Any] = self.stats.copy()

        if stats["uploads_attempted"] > 0:
            stats["success_rate"] = stats["uploads_successful"] / stats["uploads_attempted"]
        else:
            stats["success_rate"] = 0.0

        stats["client_active"] = self._client is not None
        stats["bucket"] = self.bucket
        return stats

    async def health_check(self) -> Dict[str, Any]:
        """Check that the bucket is reachable with the configured credentials"""
        try:

            def _head_bucket() -> None:
                client = self._ensure_client()
                client.head_bucket(Bucket=self.bucket)

            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, _head_bucket)

            return {"status": "healthy", "bucket": self.bucket, "stats": self.get_stats()}

        except Exception as e:
            return {"status": "unhealthy", "bucket": self.bucket, "error": str(e)}
