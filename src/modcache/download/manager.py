"""
Download manager for modcache.

`DownloadManager.download` is the single entry point the cache uses to turn a
URL into a file on disk: it creates the target directory, sends a conditional
GET when a previous copy exists, follows redirects, names the file after the
final URL when asked to, and streams the body into place atomically.
"""

import asyncio
import inspect
import os
import time
from pathlib import Path
from typing import Any, Callable, Optional, Union

import aiofiles
from yarl import URL

from modcache.constants import (
    BYTES_PER_MEGABYTE,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_CONCURRENT_DOWNLOADS,
    FILE_SIZE_MB_LOGGING_THRESHOLD,
    HTTP_STATUS_NOT_MODIFIED,
)
from modcache.exceptions import DownloadError, FileSystemError, UnexpectedStatusError
from modcache.log_utils import logger
from modcache.utils import format_http_date, get_user_agent

from . import fs
from .http_client import HttpClient, HttpRequest, HttpResponse
from .redirects import RedirectFollower

Pathish = Union[str, Path]
ProgressCallback = Callable[[int, Optional[int], str], Any]


def filename_from_url(url: URL) -> str:
    """
    Derive a filename from the last path segment of `url`, percent-decoded.

    Raises:
        DownloadError: If the segment is empty or would escape the target directory.
    """
    name = url.name
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        raise DownloadError(
            "Cannot derive a filename from the download URL",
            url=str(url),
            details=f"last path segment: {name!r}",
        )
    return name


class DownloadManager:
    """
    Fetch URLs to local files.

    The manager owns a `RedirectFollower` (and through it an `HttpClient`) and
    limits how many bodies are streamed at once with a semaphore. Use it as an
    async context manager, or call `close()`, to release the HTTP session.
    """

    def __init__(
        self,
        redirects: RedirectFollower,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT_DOWNLOADS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.redirects = redirects
        self.max_concurrent = max(1, max_concurrent)
        self.chunk_size = chunk_size
        self._semaphore: Optional[asyncio.Semaphore] = None

    @property
    def client(self) -> HttpClient:
        return self.redirects.client

    async def __aenter__(self) -> "DownloadManager":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.close()

    def _get_semaphore(self) -> asyncio.Semaphore:
        """
        Lazily create and return a semaphore used to limit concurrent downloads.

        Created on first use so it binds to the running event loop.
        """
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
        return self._semaphore

    def _request(self, url: URL, headers: Optional[dict] = None) -> HttpRequest:
        request_headers = {"User-Agent": get_user_agent()}
        if headers:
            request_headers.update(headers)
        return HttpRequest("GET", url, request_headers)

    async def fetch_bytes(self, url: URL) -> bytes:
        """GET `url`, following redirects, and return the body."""
        async with self._get_semaphore():
            body, _final_url = await self.redirects.fetch_bytes(self._request(url))
        return body

    async def download(
        self,
        url: URL,
        destination: Pathish,
        append_filename: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Path:
        """
        Download `url` to `destination`.

        Parameters:
            url (URL): Absolute source URL.
            destination (Pathish): The file to write, or, when `append_filename`
                is set, the directory to write into under a name taken from the
                final (post-redirect) URL.
            append_filename (bool): Treat `destination` as a directory.
            progress_callback (Optional[ProgressCallback]): Called with
                (downloaded_bytes, total_bytes_or_None, filename); may be sync or async.

        Returns:
            Path: The file that now holds the body. On 304 Not Modified this is
            `destination`, left untouched.

        Raises:
            FileSystemError: Directory creation, mtime read or body write failed.
            DownloadError: Transport, redirect or HTTP status failures.
        """
        destination = Path(destination)
        target_dir = destination if append_filename else destination.parent
        await fs.ensure_dir(target_dir)

        headers = {}
        if not append_filename:
            mtime = await fs.file_mtime(destination)
            if mtime is not None:
                headers["If-Modified-Since"] = format_http_date(mtime)

        logger.info("Downloading %s", url)
        async with self._get_semaphore():
            response, final_url = await self.redirects.fetch(
                self._request(url, headers)
            )
            try:
                if response.status == HTTP_STATUS_NOT_MODIFIED:
                    # Only meaningful as an answer to If-Modified-Since
                    if "If-Modified-Since" not in headers:
                        raise UnexpectedStatusError(
                            "Not Modified returned for an unconditional request",
                            status_code=response.status,
                            url=str(url),
                            details=f"at {final_url}",
                        )
                    logger.info("Not modified, keeping %s", destination)
                    return destination

                if append_filename:
                    target = destination / filename_from_url(final_url)
                else:
                    target = destination
                await self._stream_to_file(response, target, progress_callback)
            finally:
                response.release()

        logger.debug("Downloaded %s as %s", url, target)
        return target

    async def _stream_to_file(
        self,
        response: HttpResponse,
        target: Path,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        """Write the body to a temporary sibling of `target` and rename it into place."""
        temp_path = fs.temp_path_for(target)
        total_size = response.content_length
        downloaded = 0
        start_time = time.time()

        try:
            try:
                async with aiofiles.open(temp_path, "wb") as f:
                    async for chunk in response.iter_chunks(self.chunk_size):
                        await f.write(chunk)
                        downloaded += len(chunk)
                        if progress_callback:
                            await self._call_progress_callback(
                                progress_callback, downloaded, total_size, target.name
                            )
                await asyncio.to_thread(os.replace, temp_path, target)
            except OSError as e:
                raise FileSystemError(
                    f"Failed to write download: {e}", path=str(target)
                ) from e
        except (Exception, asyncio.CancelledError):
            await fs.cleanup_temp_file(temp_path)
            raise

        elapsed = time.time() - start_time
        file_size_mb = downloaded / BYTES_PER_MEGABYTE
        if file_size_mb >= FILE_SIZE_MB_LOGGING_THRESHOLD:
            logger.info(
                "Downloaded: %s (%.1f MB in %.2fs)", target.name, file_size_mb, elapsed
            )
        else:
            logger.info(
                "Downloaded: %s (%d bytes in %.2fs)", target.name, downloaded, elapsed
            )

    async def _call_progress_callback(
        self,
        callback: ProgressCallback,
        downloaded: int,
        total: Optional[int],
        filename: str,
    ) -> None:
        """
        Invoke a progress callback and suppress any callback errors.

        Parameters:
            callback (ProgressCallback): Callable receiving (downloaded, total, filename). May be synchronous or return a coroutine.
            downloaded (int): Number of bytes downloaded so far.
            total (Optional[int]): Total number of bytes if known, otherwise None.
            filename (str): Target filename being downloaded.
        """
        try:
            result = callback(downloaded, total, filename)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.debug("Progress callback error: %s", e)
