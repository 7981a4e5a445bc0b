from .dispatcher import BackgroundDispatcher
from .lifecycle import DownloadService

__all__ = ["BackgroundDispatcher", "DownloadService"]
