"""
Client for submitting downloads and polling them to completion.
"""

from .client import DEFAULT_POLL_INTERVAL, DownloadApiError, DownloadPollerClient, PollTimeoutError

__all__ = ["DownloadPollerClient", "DownloadApiError", "PollTimeoutError", "DEFAULT_POLL_INTERVAL"]
