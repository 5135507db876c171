"""
Batch operations over many artifacts.

A mod pack needs dozens of libraries and mods; these helpers resolve or
install them concurrently through one `ArtifactCache` (whose download manager
bounds the number of simultaneous transfers) and stop at the first failure.
"""

import asyncio
import inspect
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from modcache.cache import ArtifactCache, Cacheable
from modcache.log_utils import logger

BatchProgressCallback = Callable[[int, int, str], Any]


async def _call_progress_callback(
    callback: Optional[BatchProgressCallback], completed: int, total: int, label: str
) -> None:
    """Report batch progress; errors raised by the callback are logged at debug and ignored."""
    if callback is None:
        return
    try:
        result = callback(completed, total, label)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.debug("Progress callback error: %s", e)


async def _run_all(
    jobs: Sequence[Callable[[], Awaitable[Path]]],
    labels: Sequence[str],
    progress_callback: Optional[BatchProgressCallback],
) -> List[Path]:
    """
    Run every job concurrently and return results in input order.

    On the first failure the remaining jobs are cancelled and awaited before
    the error is re-raised.
    """
    total = len(jobs)
    completed = 0
    tasks = [asyncio.ensure_future(job()) for job in jobs]
    label_of = {task: label for task, label in zip(tasks, labels)}

    pending = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(
                pending, return_when=asyncio.FIRST_EXCEPTION
            )
            for task in done:
                # Raises the first failure, cancelling the rest in the finally below
                task.result()
                completed += 1
                await _call_progress_callback(
                    progress_callback, completed, total, label_of[task]
                )
    finally:
        for task in pending:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    return [task.result() for task in tasks]


async def fetch_all(
    cache: ArtifactCache,
    artifacts: Sequence[Cacheable],
    progress_callback: Optional[BatchProgressCallback] = None,
) -> List[Path]:
    """
    Make sure every artifact is cached.

    Parameters:
        cache (ArtifactCache): Cache to resolve through.
        artifacts (Sequence[Cacheable]): Artifacts to resolve. Duplicates share one download.
        progress_callback (Optional[BatchProgressCallback]): Called with
            (completed, total, label) after each artifact; may be sync or async.

    Returns:
        List[Path]: Cached payload paths, in the order of `artifacts`.

    Raises:
        CacheError: The first artifact that failed; the others are cancelled.
    """
    logger.info("Resolving %d artifacts", len(artifacts))
    jobs = [lambda artifact=artifact: cache.get(artifact) for artifact in artifacts]
    return await _run_all(
        jobs, [artifact.describe() for artifact in artifacts], progress_callback
    )


async def install_all(
    cache: ArtifactCache,
    artifacts: Sequence[Cacheable],
    location: Path,
    progress_callback: Optional[BatchProgressCallback] = None,
) -> List[Path]:
    """
    Install every artifact into the directory `location`.

    Returns:
        List[Path]: Installed paths, in the order of `artifacts`.

    Raises:
        CacheError: The first artifact that could not be cached.
        FileSystemError: The first artifact that could not be published.
    """
    location = Path(location)
    logger.info("Installing %d artifacts into %s", len(artifacts), location)
    jobs = [
        lambda artifact=artifact: cache.install_at(artifact, location)
        for artifact in artifacts
    ]
    return await _run_all(
        jobs, [artifact.describe() for artifact in artifacts], progress_callback
    )
