"""
URL-to-object-storage transfer service.

Fetches remote resources into S3-compatible storage in the background,
tracking each job in DynamoDB (or a local store) for status polling.
"""

from .utils.logging import setup_transfer_logger

__version__ = "0.1.0"
__all__ = ["setup_transfer_logger"]
