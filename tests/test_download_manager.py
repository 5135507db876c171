"""
Tests for DownloadManager.

Covers:
- Writing to an explicit file and into a folder under the final URL's name
- Conditional GET with If-Modified-Since and 304 handling
- Atomic writes (no partial target, temp file cleanup)
- Progress callbacks
- Filename derivation
"""

import asyncio
import os
from unittest.mock import AsyncMock, Mock

import pytest
from yarl import URL

from modcache.download import fs
from modcache.download.manager import DownloadManager, filename_from_url
from modcache.download.redirects import RedirectFollower
from modcache.exceptions import (
    DownloadError,
    HttpClientError,
    TransportError,
    UnexpectedStatusError,
)
from modcache.utils import format_http_date

pytestmark = [pytest.mark.unit, pytest.mark.core_downloads]

SOURCE = "https://example.com/maven/a/b/1.0/b-1.0.jar"


class TestFilenameFromUrl:
    def test_last_segment(self):
        assert filename_from_url(URL("https://cdn.example.org/files/jei-1.2.jar")) == "jei-1.2.jar"

    def test_percent_decoded(self):
        url = URL("https://cdn.example.org/files/Just%20Enough%20Items.jar")

        assert filename_from_url(url) == "Just Enough Items.jar"

    def test_query_is_ignored(self):
        url = URL("https://cdn.example.org/files/mod.jar?token=abc")

        assert filename_from_url(url) == "mod.jar"

    @pytest.mark.parametrize(
        "url",
        [
            "https://cdn.example.org/",
            "https://cdn.example.org/files/",
            "https://cdn.example.org/files/..%5Cevil.jar",
        ],
    )
    def test_unusable_names_raise(self, url):
        with pytest.raises(DownloadError):
            filename_from_url(URL(url))


@pytest.mark.asyncio
class TestDownload:
    async def test_writes_file_and_creates_parents(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        fake_client.add(SOURCE, make_response(200, b"jar-bytes"))
        target = tmp_path / "cache" / "a" / "b" / "b-1.0.jar"

        result = await download_manager.download(URL(SOURCE), target)

        assert result == target
        assert target.read_bytes() == b"jar-bytes"

    async def test_sends_user_agent(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        fake_client.add(SOURCE, make_response(200, b"x"))

        await download_manager.download(URL(SOURCE), tmp_path / "b.jar")

        headers = fake_client.requests[0].headers
        assert headers["User-Agent"].startswith("modcache/")
        assert "If-Modified-Since" not in headers

    async def test_append_filename_uses_final_url(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        fake_client.add(
            SOURCE,
            make_response(302, headers={"Location": "https://cdn.example.org/f/real-name-2.0.jar"}),
        )
        fake_client.add(
            "https://cdn.example.org/f/real-name-2.0.jar", make_response(200, b"mod")
        )
        folder = tmp_path / "jei" / "2803400"

        result = await download_manager.download(
            URL(SOURCE), folder, append_filename=True
        )

        assert result == folder / "real-name-2.0.jar"
        assert result.read_bytes() == b"mod"

    async def test_append_filename_never_sends_conditional_header(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        folder = tmp_path / "folder"
        folder.mkdir()
        fake_client.add(
            "https://cdn.example.org/f/x.jar", make_response(200, b"mod")
        )

        await download_manager.download(
            URL("https://cdn.example.org/f/x.jar"), folder, append_filename=True
        )

        assert "If-Modified-Since" not in fake_client.requests[0].headers

    async def test_conditional_get_keeps_file_on_304(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        target = tmp_path / "b-1.0.jar"
        target.write_bytes(b"old")
        os.utime(target, (784111777, 784111777))
        fake_client.add(SOURCE, make_response(304))

        result = await download_manager.download(URL(SOURCE), target)

        assert result == target
        assert target.read_bytes() == b"old"
        assert (
            fake_client.requests[0].headers["If-Modified-Since"]
            == "Sun, 06 Nov 1994 08:49:37 GMT"
        )

    async def test_unconditional_304_is_rejected(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        fake_client.add(SOURCE, make_response(304))
        target = tmp_path / "b-1.0.jar"

        with pytest.raises(UnexpectedStatusError) as exc_info:
            await download_manager.download(URL(SOURCE), target)

        assert exc_info.value.status_code == 304
        assert exc_info.value.url == SOURCE
        assert "If-Modified-Since" not in fake_client.requests[0].headers
        assert list(tmp_path.iterdir()) == []

    async def test_conditional_get_replaces_file_on_200(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        target = tmp_path / "b-1.0.jar"
        target.write_bytes(b"old")
        mtime = target.stat().st_mtime
        fake_client.add(SOURCE, make_response(200, b"new"))

        await download_manager.download(URL(SOURCE), target)

        assert target.read_bytes() == b"new"
        assert fake_client.requests[0].headers["If-Modified-Since"] == format_http_date(
            mtime
        )

    async def test_http_error_leaves_no_file(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        fake_client.add(SOURCE, make_response(404))
        target = tmp_path / "b-1.0.jar"

        with pytest.raises(HttpClientError):
            await download_manager.download(URL(SOURCE), target)

        assert not target.exists()
        assert list(tmp_path.iterdir()) == []

    async def test_interrupted_body_leaves_no_partial_file(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        fake_client.add(
            SOURCE,
            make_response(
                200, b"partial", fail_after=TransportError("connection reset")
            ),
        )
        target = tmp_path / "b-1.0.jar"

        with pytest.raises(TransportError):
            await download_manager.download(URL(SOURCE), target)

        assert list(tmp_path.iterdir()) == []

    async def test_interrupted_body_keeps_previous_copy(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        target = tmp_path / "b-1.0.jar"
        target.write_bytes(b"previous")
        fake_client.add(
            SOURCE,
            make_response(200, b"new", fail_after=TransportError("reset")),
        )

        with pytest.raises(TransportError):
            await download_manager.download(URL(SOURCE), target)

        assert target.read_bytes() == b"previous"
        assert [p.name for p in tmp_path.iterdir()] == ["b-1.0.jar"]

    async def test_cancelled_download_cleans_temp_file(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        gate = asyncio.Event()
        fake_client.add(SOURCE, make_response(200, b"x", gate=gate))
        target = tmp_path / "b-1.0.jar"

        task = asyncio.ensure_future(download_manager.download(URL(SOURCE), target))
        for _ in range(200):
            if any(tmp_path.iterdir()):
                break
            await asyncio.sleep(0.01)
        assert any(tmp_path.iterdir())
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert list(tmp_path.iterdir()) == []

    async def test_response_released(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        response = make_response(200, b"x")
        fake_client.add(SOURCE, response)

        await download_manager.download(URL(SOURCE), tmp_path / "b.jar")

        assert response.released is True


@pytest.mark.asyncio
class TestProgress:
    async def test_sync_callback(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        download_manager.chunk_size = 4
        fake_client.add(
            SOURCE, make_response(200, b"12345678", headers={"Content-Length": "8"})
        )
        callback = Mock()

        await download_manager.download(
            URL(SOURCE), tmp_path / "b.jar", progress_callback=callback
        )

        assert [c.args for c in callback.call_args_list] == [
            (4, 8, "b.jar"),
            (8, 8, "b.jar"),
        ]

    async def test_async_callback(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        fake_client.add(SOURCE, make_response(200, b"abc"))
        callback = AsyncMock()

        await download_manager.download(
            URL(SOURCE), tmp_path / "b.jar", progress_callback=callback
        )

        callback.assert_awaited_once_with(3, None, "b.jar")

    async def test_callback_errors_are_ignored(
        self, tmp_path, fake_client, make_response, download_manager
    ):
        fake_client.add(SOURCE, make_response(200, b"abc"))
        callback = Mock(side_effect=ValueError("boom"))

        result = await download_manager.download(
            URL(SOURCE), tmp_path / "b.jar", progress_callback=callback
        )

        assert result.read_bytes() == b"abc"


@pytest.mark.asyncio
class TestManagerMisc:
    async def test_fetch_bytes(self, fake_client, make_response, download_manager):
        fake_client.add(SOURCE + ".sha1", make_response(200, b"deadbeef"))

        assert await download_manager.fetch_bytes(URL(SOURCE + ".sha1")) == b"deadbeef"

    async def test_close_closes_client(self, fake_client, download_manager):
        async with download_manager:
            pass

        assert fake_client.closed is True

    async def test_max_concurrent_is_at_least_one(self, fake_client):
        manager = DownloadManager(RedirectFollower(fake_client), max_concurrent=0)

        assert manager.max_concurrent == 1


class TestTempFiles:
    def test_temp_path_is_hidden_sibling(self, tmp_path):
        temp = fs.temp_path_for(tmp_path / "mod.jar")

        assert temp.parent == tmp_path
        assert fs.is_temp_file(temp.name)
        assert not fs.is_temp_file("mod.jar")
