"""
modcache Download Subsystem

Core Components:
- http_client: single-exchange aiohttp client
- redirects: redirect chain following
- manager: conditional, atomic downloads to disk
- fs: non-blocking filesystem helpers
- orchestrator: batch fetch and install (import it directly)
"""

from .http_client import HttpClient, HttpRequest, HttpResponse
from .manager import DownloadManager, filename_from_url
from .redirects import RedirectFollower, is_success_status

__all__ = [
    "HttpClient",
    "HttpRequest",
    "HttpResponse",
    "DownloadManager",
    "filename_from_url",
    "RedirectFollower",
    "is_success_status",
]
