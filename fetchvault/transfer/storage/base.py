"""
Object store interface used by the pipeline and the lifecycle service.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ...schema.download import DEFAULT_CONTENT_TYPE
from ..core.types import ObjectMetadata, ProgressCallback


class ObjectStore(ABC):
    """Capability exposing put, signed get and head against object storage."""

    @abstractmethod
    async def put(
        self,
        key: str,
        content: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
        size: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> str:
        """Upload content under key, overwriting. Returns the storage locator."""
        ...

    @abstractmethod
    async def signed_get(self, key: str, ttl_seconds: int) -> str:
        """Return a URL granting read access to key for ttl_seconds."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    async def head_metadata(self, key: str) -> ObjectMetadata:
        """Raises NotFoundError when key is absent."""
        ...

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy"}
