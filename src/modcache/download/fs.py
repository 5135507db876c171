"""
Non-blocking filesystem helpers for the download subsystem.

Every call here goes through aiofiles (which runs the blocking syscall in the
default executor) or `asyncio.to_thread`, so cache population never stalls the
event loop. OS errors are wrapped in `FileSystemError` carrying the path.
"""

import asyncio
import os
import shutil
import time
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from modcache.constants import DEFAULT_CHUNK_SIZE, TEMP_FILE_PREFIX, TEMP_FILE_SUFFIX
from modcache.exceptions import FileSystemError
from modcache.log_utils import logger


async def ensure_dir(path: Path) -> None:
    """Create `path` and any missing parents."""
    try:
        await aiofiles.os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise FileSystemError(
            f"Failed to create directory: {e}", path=str(path)
        ) from e


async def path_exists(path: Path) -> bool:
    return await aiofiles.os.path.exists(path)


async def file_mtime(path: Path) -> Optional[float]:
    """
    Return the modification time of `path` if it is a regular file.

    Returns:
        Optional[float]: POSIX timestamp, or None when `path` is missing or not a file.

    Raises:
        FileSystemError: If the file exists but its metadata cannot be read.
    """
    if not await aiofiles.os.path.isfile(path):
        return None
    try:
        stat_result = await aiofiles.os.stat(path)
    except OSError as e:
        raise FileSystemError(
            f"Failed to read modification time: {e}", path=str(path)
        ) from e
    return stat_result.st_mtime


def is_temp_file(name: str) -> bool:
    return name.startswith(TEMP_FILE_PREFIX) and name.endswith(TEMP_FILE_SUFFIX)


def temp_path_for(target: Path) -> Path:
    """Hidden sibling of `target` that a download is written to before the rename."""
    return target.with_name(
        f"{TEMP_FILE_PREFIX}{target.name}.{os.getpid()}.{int(time.time() * 1000)}{TEMP_FILE_SUFFIX}"
    )


async def first_file_in_folder(path: Path) -> Optional[Path]:
    """
    Return the first entry of the folder `path`, by name.

    Partial downloads left behind by an interrupted run are ignored. A folder
    that cannot be listed is reported the same way as an empty one.

    Returns:
        Optional[Path]: The first entry, or None when the folder is empty or unreadable.
    """
    try:
        names = await aiofiles.os.listdir(path)
    except OSError as e:
        logger.debug("Could not list cache folder %s: %s", path, e)
        return None
    entries = sorted(name for name in names if not is_temp_file(name))
    if not entries:
        return None
    return path / entries[0]


async def remove_path(path: Path) -> None:
    """Remove a file, symlink or directory tree at `path`; a missing path is not an error."""
    try:
        if await aiofiles.os.path.isdir(path) and not await aiofiles.os.path.islink(
            path
        ):
            await asyncio.to_thread(shutil.rmtree, path)
        elif await aiofiles.os.path.exists(path) or await aiofiles.os.path.islink(
            path
        ):
            await aiofiles.os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        raise FileSystemError(f"Failed to remove: {e}", path=str(path)) from e


async def cleanup_temp_file(temp_path: Path) -> None:
    """
    Delete the temporary file at the given path if it exists.

    OS errors are logged at debug level and suppressed.
    """
    try:
        if await aiofiles.os.path.exists(temp_path):
            await aiofiles.os.remove(temp_path)
    except OSError as e:
        logger.debug("Error cleaning up temp file %s: %s", temp_path, e)


async def copy_file_exclusive(
    source: Path, destination: Path, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> None:
    """
    Copy `source` to `destination` byte for byte, refusing to overwrite.

    Raises:
        FileExistsError: If `destination` already exists.
        OSError: On any other read or write failure.
    """
    async with aiofiles.open(source, "rb") as src:
        async with aiofiles.open(destination, "xb") as dst:
            while True:
                chunk = await src.read(chunk_size)
                if not chunk:
                    break
                await dst.write(chunk)
