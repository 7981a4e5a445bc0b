"""
Object storage for the transfer service.
"""

from .base import ObjectStore
from .s3_client import S3ObjectStore

__all__ = ["ObjectStore", "S3ObjectStore"]
