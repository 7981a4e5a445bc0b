from .client import ContentTooLargeError, SourceFetcher, SourceResponse

__all__ = ["SourceFetcher", "SourceResponse", "ContentTooLargeError"]
