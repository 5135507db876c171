"""
Async HTTP Client for modcache

This module wraps an aiohttp ClientSession so that every call performs exactly
one HTTP exchange: no retries and no redirect following. Redirects are handled
one level up by `RedirectFollower`, which needs to see every hop.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Mapping, Optional

import aiohttp
from aiohttp import ClientResponse, ClientSession, ClientTimeout, TCPConnector
from yarl import URL

from modcache.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONNECTOR_LIMIT,
)
from modcache.exceptions import InvalidURLError, TransportError
from modcache.log_utils import logger


@dataclass(frozen=True)
class HttpRequest:
    """A single request; replayed unchanged on every redirect hop."""

    method: str
    url: URL
    headers: Dict[str, str] = field(default_factory=dict)

    def with_url(self, url: URL) -> "HttpRequest":
        return HttpRequest(self.method, url, dict(self.headers))


class HttpResponse:
    """
    Response of a single exchange with its body still unread.

    The body must be consumed with `iter_chunks()` or `read()`, and the
    connection returned to the pool with `release()` once the caller is done.
    """

    def __init__(self, response: ClientResponse) -> None:
        self._response = response

    @property
    def status(self) -> int:
        return self._response.status

    @property
    def headers(self) -> Mapping[str, str]:
        return self._response.headers

    @property
    def url(self) -> URL:
        return self._response.url

    @property
    def content_length(self) -> Optional[int]:
        raw_value = self.headers.get("Content-Length")
        try:
            return int(raw_value) if raw_value else None
        except (TypeError, ValueError):
            return None

    async def iter_chunks(
        self, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        """
        Yield the response body in chunks of at most `chunk_size` bytes.

        Raises:
            TransportError: If the connection fails while the body is being read.
        """
        try:
            async for chunk in self._response.content.iter_chunked(chunk_size):
                yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"Error reading response body: {e}", url=str(self.url)
            ) from e

    async def read(self) -> bytes:
        """Read the whole response body."""
        try:
            return await self._response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"Error reading response body: {e}", url=str(self.url)
            ) from e

    def release(self) -> None:
        self._response.release()


class HttpClient:
    """
    Asynchronous single-exchange HTTP client using aiohttp.

    Plaintext and TLS transports are chosen by aiohttp from the URL scheme.
    The protocol version is fixed per session, so every redirect hop sent
    through one client uses the same version.

    Example:
        async with HttpClient() as client:
            response = await client.send(HttpRequest("GET", URL("https://example.com/")))
            try:
                body = await response.read()
            finally:
                response.release()
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        connector_limit: int = DEFAULT_CONNECTOR_LIMIT,
        session: Optional[ClientSession] = None,
    ) -> None:
        """
        Initialize the client.

        Parameters:
            timeout (Optional[float]): Total per-exchange timeout in seconds; None disables the timeout.
            connector_limit (int): Maximum total connections in the pool.
            session (Optional[ClientSession]): Pre-built session to use instead of creating one; it is still closed by `close()`.
        """
        self.timeout = ClientTimeout(total=timeout)
        self.connector_limit = connector_limit
        self._session: Optional[ClientSession] = session

    async def __aenter__(self) -> "HttpClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _ensure_session(self) -> ClientSession:
        """
        Ensure a session exists, creating one if needed.

        Returns:
            ClientSession: The active aiohttp session.
        """
        if self._session is None or self._session.closed:
            connector = TCPConnector(
                limit=self.connector_limit,
                enable_cleanup_closed=True,
            )
            self._session = ClientSession(connector=connector, timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        """Close the client session and release resources."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def send(self, request: HttpRequest) -> HttpResponse:
        """
        Perform exactly one HTTP exchange.

        Parameters:
            request (HttpRequest): Method, absolute URL and headers to send.

        Returns:
            HttpResponse: The response with its body unread. The caller must release it.

        Raises:
            InvalidURLError: If aiohttp rejects the URL.
            TransportError: On connection, TLS, protocol or timeout failures.
        """
        session = await self._ensure_session()
        logger.debug("%s %s", request.method, request.url)
        try:
            response = await session.request(
                request.method,
                request.url,
                headers=request.headers,
                allow_redirects=False,
            )
        except aiohttp.InvalidURL as e:
            raise InvalidURLError(
                f"Invalid URL: {request.url}", value=str(request.url)
            ) from e
        except aiohttp.ClientError as e:
            raise TransportError(
                f"Network error: {e}", url=str(request.url)
            ) from e
        except asyncio.TimeoutError as e:
            raise TransportError(
                "Request timed out", url=str(request.url)
            ) from e
        return HttpResponse(response)
