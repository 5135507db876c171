"""
Redirect following for modcache downloads.

Mod hosting sites answer download links with a chain of redirects that ends at
a CDN URL carrying the real filename. `RedirectFollower` turns such a chain
into one logical request and reports the URL the chain ended at, which the
download manager uses to name the file.
"""

from typing import Tuple

from yarl import URL

from modcache.constants import (
    DEFAULT_MAX_REDIRECTS,
    HTTP_STATUS_CLIENT_ERROR_MIN,
    HTTP_STATUS_NOT_MODIFIED,
    HTTP_STATUS_SERVER_ERROR_MAX,
    HTTP_STATUS_SERVER_ERROR_MIN,
    REDIRECT_STATUS_CODES,
)
from modcache.exceptions import (
    HttpClientError,
    HttpServerError,
    MalformedRedirectError,
    TooManyRedirectsError,
    UnexpectedStatusError,
)
from modcache.log_utils import logger

from .http_client import HttpClient, HttpRequest, HttpResponse


def is_success_status(status: int) -> bool:
    """
    Return True for statuses that end a redirect chain successfully.

    Any 2xx status is a success. 304 Not Modified is also terminal: it answers
    a conditional request and is handled by the caller.
    """
    return 200 <= status < 300 or status == HTTP_STATUS_NOT_MODIFIED


class RedirectFollower:
    """
    Follow 301/302/307 chains on top of a single-exchange `HttpClient`.

    Every hop replays the original method and headers. Relative `Location`
    values are resolved against the URL of the hop that returned them.
    """

    def __init__(
        self, client: HttpClient, max_redirects: int = DEFAULT_MAX_REDIRECTS
    ) -> None:
        self.client = client
        self.max_redirects = max(0, max_redirects)

    async def fetch(self, request: HttpRequest) -> Tuple[HttpResponse, URL]:
        """
        Send `request`, following redirects until a terminal status.

        Returns:
            Tuple[HttpResponse, URL]: The terminal response, body unread, and the
            URL it was served from. The caller must release the response.

        Raises:
            MalformedRedirectError: A redirect without a usable Location header.
            TooManyRedirectsError: More than `max_redirects` hops.
            HttpClientError: A 4xx status; `url` is the original request URL.
            HttpServerError: A 5xx status; `url` is the original request URL.
            UnexpectedStatusError: Any other non-success status.
            TransportError: Propagated from the client.
        """
        original_url = str(request.url)
        location = request.url
        redirects = 0

        while True:
            response = await self.client.send(request.with_url(location))
            status = response.status

            if status in REDIRECT_STATUS_CODES:
                try:
                    location = self._next_location(response, location, original_url)
                finally:
                    response.release()
                redirects += 1
                if redirects > self.max_redirects:
                    raise TooManyRedirectsError(
                        f"Exceeded {self.max_redirects} redirects",
                        max_redirects=self.max_redirects,
                        url=original_url,
                        details=f"last location: {location}",
                    )
                logger.debug("Redirect %d (%d) to %s", redirects, status, location)
                continue

            if is_success_status(status):
                if status != 200:
                    logger.debug("Accepting HTTP %d from %s", status, location)
                return response, location

            response.release()
            if HTTP_STATUS_CLIENT_ERROR_MIN <= status < HTTP_STATUS_SERVER_ERROR_MIN:
                raise HttpClientError(
                    f"HTTP error {status}",
                    status_code=status,
                    url=original_url,
                    details=f"at {location}" if str(location) != original_url else None,
                )
            if HTTP_STATUS_SERVER_ERROR_MIN <= status <= HTTP_STATUS_SERVER_ERROR_MAX:
                raise HttpServerError(
                    f"HTTP error {status}",
                    status_code=status,
                    url=original_url,
                    details=f"at {location}" if str(location) != original_url else None,
                )
            raise UnexpectedStatusError(
                f"Unexpected HTTP status {status}",
                status_code=status,
                url=original_url,
                details=f"at {location}",
            )

    async def fetch_bytes(self, request: HttpRequest) -> Tuple[bytes, URL]:
        """Fetch `request` following redirects and return the whole body and final URL."""
        response, final_url = await self.fetch(request)
        try:
            return await response.read(), final_url
        finally:
            response.release()

    @staticmethod
    def _next_location(response: HttpResponse, current: URL, original_url: str) -> URL:
        raw_location = response.headers.get("Location")
        if not raw_location or not raw_location.strip():
            raise MalformedRedirectError(
                f"HTTP {response.status} redirect without a Location header",
                status_code=response.status,
                url=original_url,
                details=f"at {current}",
            )
        try:
            return current.join(URL(raw_location.strip()))
        except ValueError as e:
            raise MalformedRedirectError(
                f"Invalid Location header: {raw_location!r}",
                status_code=response.status,
                url=original_url,
                details=str(e),
            ) from e
