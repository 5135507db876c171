"""
Publishing cached artifacts into install locations.

Installs prefer a symbolic link back into the cache. Some hosts refuse to
create symlinks for unprivileged users (consumer Windows accounts, FAT-style
filesystems); the first such refusal switches the shared `LinkStrategyCell`
to copying for the rest of the process.
"""

import asyncio
import errno
import shutil
import threading
from enum import Enum
from pathlib import Path

import aiofiles.os

from modcache.constants import WINDOWS_ERROR_PRIVILEGE_NOT_HELD
from modcache.exceptions import AlreadyExistsError, LinkError
from modcache.log_utils import logger

from .download import fs


class LinkStrategy(Enum):
    SYMLINK = "symlink"
    COPY = "copy"


class LinkStrategyCell:
    """
    Shared, one-way switch between symlinking and copying.

    Starts at SYMLINK (unless told otherwise) and can only move to COPY.
    A few publishes racing the switch may each try and fail a symlink first;
    they all end up copying.
    """

    def __init__(self, strategy: LinkStrategy = LinkStrategy.SYMLINK) -> None:
        self._strategy = strategy
        self._lock = threading.Lock()

    @property
    def strategy(self) -> LinkStrategy:
        return self._strategy

    def downgrade(self) -> bool:
        """
        Switch to COPY permanently.

        Returns:
            bool: True if this call performed the switch.
        """
        with self._lock:
            if self._strategy is LinkStrategy.COPY:
                return False
            self._strategy = LinkStrategy.COPY
            return True


# Created once per process; pass it to every LinkPublisher that should share the latch
DEFAULT_LINK_STRATEGY = LinkStrategyCell()


def is_symlink_privilege_error(error: OSError) -> bool:
    """Return True if `error` means the user may not create symlinks here."""
    if getattr(error, "winerror", None) == WINDOWS_ERROR_PRIVILEGE_NOT_HELD:
        return True
    return error.errno == errno.EPERM


class LinkPublisher:
    """Place cached files into target directories by symlink, or by copy once symlinks are refused."""

    def __init__(self, cell: LinkStrategyCell = DEFAULT_LINK_STRATEGY) -> None:
        self.cell = cell

    async def publish(self, source: Path, destination: Path) -> LinkStrategy:
        """
        Make `destination` provide the contents of `source`.

        An existing destination is never replaced, whichever strategy is active.

        Returns:
            LinkStrategy: How the destination was created.

        Raises:
            AlreadyExistsError: `destination` already exists.
            LinkError: The link or copy failed for any other reason.
        """
        # Links must keep resolving when the install location is not next to the cache
        source = Path(source).absolute()
        destination = Path(destination)

        if self.cell.strategy is LinkStrategy.COPY:
            await self._copy(source, destination)
            return LinkStrategy.COPY

        logger.debug("Symlinking %s to %s", source, destination)
        try:
            target_is_directory = await aiofiles.os.path.isdir(source)
            await aiofiles.os.symlink(
                source, destination, target_is_directory=target_is_directory
            )
        except FileExistsError as e:
            raise AlreadyExistsError(
                "Install destination already exists",
                source=str(source),
                destination=str(destination),
            ) from e
        except OSError as e:
            if not is_symlink_privilege_error(e):
                raise LinkError(
                    f"Failed to symlink: {e}",
                    source=str(source),
                    destination=str(destination),
                ) from e
            if self.cell.downgrade():
                logger.warning("Symlink permission denied, falling back to copy")
            await self._copy(source, destination)
            return LinkStrategy.COPY
        return LinkStrategy.SYMLINK

    async def _copy(self, source: Path, destination: Path) -> None:
        logger.debug("Copying %s to %s", source, destination)
        try:
            if await aiofiles.os.path.isdir(source):
                await asyncio.to_thread(shutil.copytree, source, destination)
            else:
                await fs.copy_file_exclusive(source, destination)
        except FileExistsError as e:
            raise AlreadyExistsError(
                "Install destination already exists",
                source=str(source),
                destination=str(destination),
            ) from e
        except OSError as e:
            raise LinkError(
                f"Failed to copy: {e}",
                source=str(source),
                destination=str(destination),
            ) from e
