"""
Job record storage for the transfer service.

Provides the JobStore interface with DynamoDB and local implementations.
"""

from ..config.settings import TransferSettings
from .base import JobStore
from .client import ConditionalCheckFailedError, DynamoDBClient, DynamoDBError
from .job_store import DynamoDBJobStore
from .local_job_store import LocalJobStore

__all__ = [
    "JobStore",
    "DynamoDBClient",
    "DynamoDBError",
    "ConditionalCheckFailedError",
    "DynamoDBJobStore",
    "LocalJobStore",
    # Factory functions
    "create_job_store",
]


def create_job_store(settings: TransferSettings) -> JobStore:
    """
    Factory function to create the job store configured for the environment.

    Args:
        settings: TransferSettings instance

    Returns:
        DynamoDBJobStore or LocalJobStore
    """
    if settings.store_backend == "dynamodb":
        return DynamoDBJobStore(settings)
    return LocalJobStore(settings.local_state_file)
