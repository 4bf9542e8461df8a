"""
Download module

Retrying HTTP fetches and hash verified file downloads.
"""

from craftlaunch.download.fetcher import FetchClient, backoff_delay
from craftlaunch.download.manager import DownloadManager, DownloadStats, DownloadTask
from craftlaunch.download.verifier import FileVerifier

__all__ = [
    "FetchClient",
    "backoff_delay",
    "DownloadManager",
    "DownloadStats",
    "DownloadTask",
    "FileVerifier",
]
