"""
DynamoDB client wrapper for the job record store.

Runs blocking PynamoDB calls in the default executor, classifies failures
into typed errors, and retries only throttling and connection failures.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from botocore.exceptions import ConnectionError, EndpointConnectionError, NoCredentialsError, ReadTimeoutError
from pynamodb.exceptions import DoesNotExist, PynamoDBException
from pynamodb.models import Model

from ..config.settings import TransferSettings
from ..core.exceptions import RecordStoreError
from ..utils.retry import RECORD_STORE_RETRY_CONFIG, AsyncRetrier, RetryError

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=Model)
T = TypeVar("T")

_THROTTLING_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
}


class DynamoDBError(RecordStoreError):
    """Base exception for DynamoDB operations"""

    pass


class ThrottlingError(DynamoDBError):
    """Raised when DynamoDB requests are being throttled"""

    pass


class TransientConnectionError(DynamoDBError):
    """Raised when the DynamoDB endpoint cannot be reached"""

    pass


class ConditionalCheckFailedError(DynamoDBError):
    """Raised when a conditional write is rejected"""

    pass


class DynamoDBClient:
    """
    Async facade over PynamoDB with error classification and retry logic.
    """

    def __init__(self, settings: TransferSettings, retrier: Optional[AsyncRetrier] = None):
        self.settings = settings
        self.retrier = retrier or AsyncRetrier(RECORD_STORE_RETRY_CONFIG)

        from .models import initialize_models

        initialize_models(settings)

        logger.info(f"DynamoDB client initialized for table {settings.dynamodb_table} in {settings.aws_region}")

    def classify_error(self, error: Exception, operation: str) -> DynamoDBError:
        """
        Map a PynamoDB or botocore failure to a DynamoDBError subclass.

        Args:
            error: The exception that occurred
            operation: Description of the operation that failed
        """
        cause = getattr(error, "cause", None)

        if isinstance(error, (ConnectionError, EndpointConnectionError, ReadTimeoutError)) or isinstance(
            cause, (ConnectionError, EndpointConnectionError, ReadTimeoutError)
        ):
            return TransientConnectionError(f"DynamoDB connection error during {operation}: {error}", error)

        if isinstance(error, NoCredentialsError) or isinstance(cause, NoCredentialsError):
            return DynamoDBError(f"AWS credentials not configured for DynamoDB {operation}", error)

        if isinstance(error, PynamoDBException):
            error_code = getattr(error, "cause_response_code", None) or "Unknown"
            error_message = getattr(error, "cause_response_message", None) or str(error)

            if error_code in _THROTTLING_CODES:
                return ThrottlingError(f"DynamoDB throughput exceeded during {operation}: {error_message}", error)
            if error_code == "ConditionalCheckFailedException":
                return ConditionalCheckFailedError(f"Conditional check failed during {operation}: {error_message}", error)
            if error_code == "ResourceNotFoundException":
                return DynamoDBError(f"DynamoDB table not found during {operation}: {error_message}", error)
            return DynamoDBError(f"DynamoDB error during {operation}: {error_message}", error)

        return DynamoDBError(f"Unexpected error during {operation}: {error}", error)

    async def execute_with_retry(self, operation: Callable[[], T], operation_name: str) -> T:
        """
        Run a blocking PynamoDB call off the event loop with retry logic.

        Raises:
            DynamoDBError: If the operation fails permanently or after all retries
        """

        async def _attempt() -> T:
            loop = asyncio.get_running_loop()
            try:
                return await loop.run_in_executor(None, operation)
            except DynamoDBError:
                raise
            except Exception as e:
                raise self.classify_error(e, operation_name) from e

        try:
            return await self.retrier.call(
                _attempt, retry_on=(ThrottlingError, TransientConnectionError), operation=operation_name
            )
        except RetryError as e:
            logger.error(f"DynamoDB {operation_name} gave up after {e.attempts} attempts")
            raise e.last_exception

    async def get_item(self, model_class: Type[ModelType], hash_key: Any) -> Optional[ModelType]:
        """Get a single item, or None if it does not exist"""

        def _get_item() -> Optional[ModelType]:
            try:
                return model_class.get(hash_key)
            except DoesNotExist:
                return None

        return await self.execute_with_retry(_get_item, "get_item")

    async def put_item(self, item: Model, condition: Optional[Any] = None) -> None:
        """Put an item, optionally guarded by a condition expression"""

        def _put_item() -> None:
            if condition is not None:
                item.save(condition=condition)
            else:
                item.save()

        await self.execute_with_retry(_put_item, "put_item")

    async def update_item(self, item: Model, actions: List[Any], condition: Optional[Any] = None) -> None:
        """Apply update actions atomically; the item is refreshed with the new values"""

        def _update_item() -> None:
            if condition is not None:
                item.update(actions, condition=condition)
            else:
                item.update(actions)

        await self.execute_with_retry(_update_item, "update_item")

    async def query_index(
        self,
        index: Any,
        hash_key: Any,
        limit: Optional[int] = None,
        scan_index_forward: bool = True,
    ) -> List[Any]:
        """Query a secondary index by hash key"""

        def _query_index() -> List[Any]:
            return list(index.query(hash_key, scan_index_forward=scan_index_forward, limit=limit))

        return await self.execute_with_retry(_query_index, "query_index")

    async def create_table_if_not_exists(self) -> bool:
        """Create the jobs table. Returns True if it was created."""
        from .models import DownloadModel, create_tables_if_not_exist

        created = await self.execute_with_retry(create_tables_if_not_exist, "create_table")
        if created:
            logger.info(f"Created DynamoDB table: {DownloadModel.Meta.table_name}")
        else:
            logger.info(f"DynamoDB table already exists: {DownloadModel.Meta.table_name}")
        return created

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = dict(self.retrier.get_stats())
        stats.update(
            {
                "region": self.settings.aws_region,
                "localstack_enabled": bool(self.settings.localstack_endpoint),
                "table_name": self.settings.dynamodb_table,
            }
        )
        return stats

    async def health_check(self) -> Dict[str, Any]:
        """Check that the jobs table is reachable"""
        from .models import DownloadModel

        try:
            exists = await self.execute_with_retry(DownloadModel.exists, "describe_table")
            return {
                "status": "healthy" if exists else "degraded",
                "table_exists": exists,
                "stats": self.get_stats(),
                "region": self.settings.aws_region,
            }

        except Exception as e:
            logger.error(f"DynamoDB health check failed: {e}")
            return {"status": "unhealthy", "error": str(e), "region": self.settings.aws_region}
