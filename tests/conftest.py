import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import platformdirs
import pytest
from yarl import URL

from modcache.cache import ArtifactCache, Cacheable, CacheStrategy
from modcache.download.manager import DownloadManager
from modcache.download.redirects import RedirectFollower
from modcache.publish import LinkPublisher, LinkStrategyCell

_ASYNC_NETWORK_BLOCK_MSG = (
    "Async network access is blocked during tests. Use the fake_client fixture "
    "or mock aiohttp.ClientSession."
)


async def _async_block_network(*_args, **_kwargs):
    """
    Prevent async network calls during tests by raising a RuntimeError.

    Raises:
        RuntimeError: `_ASYNC_NETWORK_BLOCK_MSG` explaining that async network access is blocked.
    """
    raise RuntimeError(_ASYNC_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    """
    Register the markers used by the test suite.

    Parameters:
        config: pytest.Config
    """
    config.addinivalue_line(
        "markers", "asyncio: mark test as an asyncio test (auto-detected)"
    )
    config.addinivalue_line("markers", "unit: fast tests without real I/O")
    config.addinivalue_line(
        "markers", "core_downloads: download, cache and publish behaviour"
    )


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Point XDG variables and platformdirs at temporary directories, and point
    the module-level config location of modcache.config into them as well.
    """
    base = tmp_path_factory.mktemp("modcache")
    cache_dir = base / "cache"
    state_dir = base / "state"
    config_dir = base / "config"
    data_dir = base / "data"
    log_dir = state_dir / "log"

    for path in (cache_dir, state_dir, config_dir, data_dir, log_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CACHE_HOME", str(cache_dir))
    monkeypatch.setenv("XDG_STATE_HOME", str(state_dir))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.setenv("XDG_DATA_HOME", str(data_dir))

    monkeypatch.setattr(
        platformdirs, "user_cache_dir", lambda *_args, **_kwargs: str(cache_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_state_dir", lambda *_args, **_kwargs: str(state_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_data_dir", lambda *_args, **_kwargs: str(data_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_log_dir", lambda *_args, **_kwargs: str(log_dir)
    )

    import modcache.config as config_module

    monkeypatch.setattr(config_module, "CONFIG_DIR", str(config_dir))
    monkeypatch.setattr(
        config_module,
        "CONFIG_FILE",
        str(Path(config_dir) / "modcache.yaml"),
    )


def pytest_runtest_setup():
    """Replace aiohttp's request entry points with a blocker so no test reaches the network."""
    import aiohttp

    aiohttp.request = _async_block_network
    aiohttp.ClientSession.request = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.get = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.head = _async_block_network  # type: ignore[assignment]


# =============================================================================
# Scripted HTTP fakes
# =============================================================================


class FakeResponse:
    """Stand-in for HttpResponse with a canned status, headers and body."""

    def __init__(
        self,
        status: int = 200,
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        gate: Optional[asyncio.Event] = None,
        fail_after: Optional[Exception] = None,
    ) -> None:
        self.status = status
        self.body = body
        self.headers = dict(headers or {})
        self.url: Optional[URL] = None
        self.gate = gate
        self.fail_after = fail_after
        self.released = False

    @property
    def content_length(self) -> Optional[int]:
        raw_value = self.headers.get("Content-Length")
        return int(raw_value) if raw_value else None

    async def iter_chunks(self, chunk_size: int = 8192):
        if self.gate is not None:
            await self.gate.wait()
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start : start + chunk_size]
        if self.fail_after is not None:
            raise self.fail_after

    async def read(self) -> bytes:
        return self.body

    def release(self) -> None:
        self.released = True


class FakeHttpClient:
    """
    Single-exchange client that answers from a script keyed by URL.

    Each URL maps to a list of responses served in order; the last one is
    repeated once the list runs out. Every request is recorded.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, List[FakeResponse]] = {}
        self.requests = []
        self.closed = False

    def add(self, url: str, *responses: FakeResponse) -> None:
        self.routes.setdefault(url, []).extend(responses)

    def requests_to(self, url: str):
        return [r for r in self.requests if str(r.url) == url]

    async def send(self, request):
        self.requests.append(request)
        script = self.routes.get(str(request.url))
        if not script:
            raise AssertionError(f"Unexpected request to {request.url}")
        response = script.pop(0) if len(script) > 1 else script[0]
        response.url = request.url
        return response

    async def close(self) -> None:
        self.closed = True


@dataclass(frozen=True)
class StubArtifact(Cacheable):
    """FILE cacheable with an explicit path and URL."""

    path: Path
    url: str

    def cached_path(self) -> Path:
        return self.path

    def source_url(self) -> URL:
        return URL(self.url)


@dataclass(frozen=True)
class StubFolderArtifact(Cacheable):
    """FOLDER cacheable with an explicit path and URL."""

    strategy = CacheStrategy.FOLDER

    path: Path
    url: str

    def cached_path(self) -> Path:
        return self.path

    def source_url(self) -> URL:
        return URL(self.url)


@pytest.fixture
def fake_client():
    return FakeHttpClient()


@pytest.fixture
def make_response():
    """Factory fixture building FakeResponse objects."""
    return FakeResponse


@pytest.fixture
def file_artifact():
    return StubArtifact


@pytest.fixture
def folder_artifact():
    return StubFolderArtifact


@pytest.fixture
def link_cell():
    """A fresh symlink/copy latch so tests never share the process-wide default."""
    return LinkStrategyCell()


@pytest.fixture
def download_manager(fake_client):
    return DownloadManager(RedirectFollower(fake_client))


@pytest.fixture
def artifact_cache(download_manager, link_cell):
    return ArtifactCache(download_manager, publisher=LinkPublisher(link_cell))


@pytest.fixture
def cache_root(tmp_path):
    root = tmp_path / "cache"
    root.mkdir()
    return root
