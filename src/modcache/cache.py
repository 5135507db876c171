"""
Artifact cache for modcache.

An artifact descriptor (`Cacheable`) knows where it lives in the cache and
where to fetch it from. `ArtifactCache` makes sure it is on disk, downloading
it on a miss, and can publish the cached file into an install location.

Two population strategies exist:

- FILE: the cached path is the payload file itself.
- FOLDER: the cached path is a directory holding the payload under the name
  the server chose (taken from the final redirect URL), because that name is
  unknown until the download happens.
"""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import ClassVar, Dict, Optional

import aiofiles
from aiofiles.threadpool.binary import AsyncBufferedReader
from yarl import URL

from modcache.constants import DEFAULT_FOLDER_CACHE_ATTEMPTS
from modcache.exceptions import (
    AlreadyExistsError,
    ArtifactDownloadError,
    CacheCorruptError,
    DownloadError,
    FileSystemError,
    InvalidURLError,
)
from modcache.log_utils import logger

from .download import fs
from .download.manager import DownloadManager, ProgressCallback
from .publish import LinkPublisher


class CacheStrategy(Enum):
    FILE = "file"
    FOLDER = "folder"


class Cacheable(ABC):
    """
    Capability an artifact kind exposes to the cache.

    `cached_path()` must be a pure function of the artifact's logical identity:
    the same artifact maps to the same path in every run.
    """

    strategy: ClassVar[CacheStrategy] = CacheStrategy.FILE

    @abstractmethod
    def cached_path(self) -> Path:
        """Deterministic location of the artifact in the cache."""

    @abstractmethod
    def source_url(self) -> URL:
        """
        URL the artifact is downloaded from.

        Raises:
            InvalidURLError: If the artifact's fields cannot form a valid URL.
        """

    def describe(self) -> str:
        """Identity of the artifact for logs and error messages."""
        return str(self)


class _InFlight:
    __slots__ = ("task", "waiters")

    def __init__(self, task: "asyncio.Future[Path]") -> None:
        self.task = task
        self.waiters = 0


class ArtifactCache:
    """
    Get-or-populate cache over artifact descriptors.

    Concurrent `get()` calls for the same cached path share a single
    population task, so an artifact is downloaded at most once at a time.
    """

    def __init__(
        self,
        manager: DownloadManager,
        publisher: Optional[LinkPublisher] = None,
        max_folder_attempts: int = DEFAULT_FOLDER_CACHE_ATTEMPTS,
    ) -> None:
        self.manager = manager
        self.publisher = publisher or LinkPublisher()
        self.max_folder_attempts = max(1, max_folder_attempts)
        self._in_flight: Dict[Path, _InFlight] = {}

    async def __aenter__(self) -> "ArtifactCache":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.manager.close()

    async def is_cached(self, artifact: Cacheable) -> bool:
        """Return True if something exists at the artifact's cached path. No integrity check is made."""
        return await fs.path_exists(artifact.cached_path())

    async def get(
        self,
        artifact: Cacheable,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Path:
        """
        Return the local path of the artifact's payload, downloading it on a miss.

        When a download of the same artifact is already running, this call
        waits for it instead of starting another one. Only the caller that
        started the download receives progress; a `progress_callback` passed
        by a joining caller is never called.

        Raises:
            ArtifactDownloadError: The artifact could not be downloaded.
            CacheCorruptError: A folder cache entry stayed empty after repopulating.
            FileSystemError: A cache folder could not be removed.
        """
        key = artifact.cached_path()
        entry = self._in_flight.get(key)
        if entry is None:
            task = asyncio.ensure_future(self._populate(artifact, progress_callback))
            entry = _InFlight(task)
            self._in_flight[key] = entry
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        else:
            logger.debug("Joining in-flight download of %s", artifact.describe())

        entry.waiters += 1
        try:
            return await asyncio.shield(entry.task)
        except asyncio.CancelledError:
            # The last waiter to leave takes the download down with it
            if entry.waiters == 1:
                entry.task.cancel()
                await asyncio.wait([entry.task])
            raise
        finally:
            entry.waiters -= 1

    def _forget(self, key: Path, task: "asyncio.Future[Path]") -> None:
        entry = self._in_flight.get(key)
        if entry is not None and entry.task is task:
            del self._in_flight[key]
        # Mark the result retrieved even if every waiter was cancelled
        if not task.cancelled():
            task.exception()

    async def _populate(
        self, artifact: Cacheable, progress_callback: Optional[ProgressCallback]
    ) -> Path:
        if artifact.strategy is CacheStrategy.FOLDER:
            return await self._populate_folder(artifact, progress_callback)
        return await self._populate_file(artifact, progress_callback)

    async def _populate_file(
        self, artifact: Cacheable, progress_callback: Optional[ProgressCallback]
    ) -> Path:
        cached_path = artifact.cached_path()
        if not await fs.path_exists(cached_path):
            logger.info("%s is not cached, downloading now", artifact.describe())
            await self._download(artifact, cached_path, False, progress_callback)
        else:
            logger.debug("%s is cached at %s", artifact.describe(), cached_path)
        return cached_path

    async def _populate_folder(
        self, artifact: Cacheable, progress_callback: Optional[ProgressCallback]
    ) -> Path:
        cached_path = artifact.cached_path()
        for attempt in range(1, self.max_folder_attempts + 1):
            if not await fs.path_exists(cached_path):
                logger.info("%s is not cached, downloading now", artifact.describe())
                await self._download(artifact, cached_path, True, progress_callback)

            entry = await fs.first_file_in_folder(cached_path)
            if entry is not None:
                return entry

            logger.warning(
                "Removing invalid cache folder %s (attempt %d/%d)",
                cached_path,
                attempt,
                self.max_folder_attempts,
            )
            await fs.remove_path(cached_path)

        raise CacheCorruptError(
            f"Cache folder for {artifact.describe()} is still empty after repopulating",
            path=str(cached_path),
            attempts=self.max_folder_attempts,
        )

    async def _download(
        self,
        artifact: Cacheable,
        cached_path: Path,
        append_filename: bool,
        progress_callback: Optional[ProgressCallback],
    ) -> Path:
        try:
            url = artifact.source_url()
        except InvalidURLError as e:
            raise ArtifactDownloadError(
                f"Invalid source URL for {artifact.describe()}",
                artifact=artifact.describe(),
                details=str(e),
            ) from e
        try:
            return await self.manager.download(
                url,
                cached_path,
                append_filename=append_filename,
                progress_callback=progress_callback,
            )
        except (DownloadError, FileSystemError, InvalidURLError) as e:
            raise ArtifactDownloadError(
                f"Error while downloading {artifact.describe()}",
                artifact=artifact.describe(),
                url=str(url),
                details=str(e),
            ) from e

    async def open(self, artifact: Cacheable) -> AsyncBufferedReader:
        """
        Resolve the artifact and open its payload for async binary reading.

        The caller closes the returned file (`await f.close()`).
        """
        path = await self.get(artifact)
        try:
            return await aiofiles.open(path, "rb")
        except OSError as e:
            raise FileSystemError(
                f"Failed to open cached file: {e}", path=str(path)
            ) from e

    async def install_at(
        self,
        artifact: Cacheable,
        location: Path,
        name: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Path:
        """
        Publish the artifact's payload into the directory `location`.

        The installed file is named after the cached payload unless `name` is
        given. An existing file at the destination is left alone and treated
        as already installed; its content is not checked.

        Returns:
            Path: The installed path.
        """
        cached = await self.get(artifact, progress_callback)
        location = Path(location)
        logger.info("Installing %s into %s", artifact.describe(), location)
        await fs.ensure_dir(location)

        destination = location / (name or cached.name)
        try:
            await self.publisher.publish(cached, destination)
        except AlreadyExistsError:
            logger.warning(
                "%s already exists, assuming content is correct", destination
            )
        return destination
