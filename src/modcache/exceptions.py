"""
Custom exceptions for modcache.

This module defines the error taxonomy of the artifact cache and download
engine. Every exception carries the URL or path it concerns so callers can
tell a bad pack definition apart from a transient network problem.
"""


class ModcacheError(Exception):
    """
    Base exception for all modcache errors.

    All custom exceptions in modcache inherit from this class to allow for
    easy catching of all library-specific errors.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ModcacheError):
    """
    Exception raised when configuration is invalid or missing.

    This includes:
    - Invalid configuration values
    - Configuration file parsing errors
    """

    pass


class ConfigFileError(ConfigurationError):
    """Exception raised when the configuration file cannot be read or parsed."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.path = path


# =============================================================================
# URL Errors
# =============================================================================


class InvalidURLError(ModcacheError):
    """
    Exception raised when a URL cannot be built or parsed.

    Source URLs are assembled from untrusted identifier strings (mod ids,
    versions, repository bases), so this is raised before any request is sent.
    """

    def __init__(
        self,
        message: str,
        value: str | None = None,
        details: str | None = None,
    ) -> None:
        """
        Initialize the URL exception.

        Args:
            message: The primary error message.
            value: The offending URL or URL fragment.
            details: Optional additional context.
        """
        super().__init__(message, details)
        self.value = value


# =============================================================================
# Download Errors
# =============================================================================


class DownloadError(ModcacheError):
    """
    Base exception for download-related errors.

    Attributes:
        url: The URL that was being downloaded when the error occurred.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.url = url


class TransportError(DownloadError):
    """
    Exception raised for connection-level failures.

    This includes:
    - Connection refused or reset
    - DNS resolution failures
    - SSL/TLS errors
    - Timeouts imposed by the configured request timeout
    - Truncated or malformed response bodies
    """

    pass


class HTTPError(DownloadError):
    """
    Exception raised when a request ends in an HTTP status that is not a success.

    Attributes:
        status_code: The HTTP status code returned by the server.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, url, details)
        self.status_code = status_code


class HttpClientError(HTTPError):
    """Exception raised for 4xx responses; `url` is the URL the request started from."""

    pass


class HttpServerError(HTTPError):
    """Exception raised for 5xx responses; `url` is the URL the request started from."""

    pass


class UnexpectedStatusError(HTTPError):
    """Exception raised for statuses that are neither success, redirect nor error."""

    pass


class RedirectError(DownloadError):
    """Base exception for redirect chains that cannot be followed."""

    pass


class MalformedRedirectError(RedirectError):
    """Exception raised when a redirect response carries no usable Location header."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, url, details)
        self.status_code = status_code


class TooManyRedirectsError(RedirectError):
    """Exception raised when a redirect chain exceeds the configured maximum."""

    def __init__(
        self,
        message: str,
        max_redirects: int,
        url: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, url, details)
        self.max_redirects = max_redirects


# =============================================================================
# File System Errors
# =============================================================================


class FileSystemError(ModcacheError):
    """
    Exception raised for file system-related errors.

    This includes:
    - Directory creation failures
    - File open, write and stat failures
    - Directory listing and removal failures
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: str | None = None,
    ) -> None:
        """
        Initialize the file system exception.

        Args:
            message: The primary error message.
            path: The file path that caused the error.
            details: Optional additional context.
        """
        super().__init__(message, details)
        self.path = path


class LinkError(FileSystemError):
    """Exception raised when a cached file cannot be published into an install location."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        destination: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, destination, details)
        self.source = source
        self.destination = destination


class AlreadyExistsError(LinkError):
    """
    Raised when the publish destination already exists.

    This is a signal rather than a failure: the caller decides whether an
    existing destination satisfies the install.
    """

    pass


# =============================================================================
# Cache Errors
# =============================================================================


class CacheError(ModcacheError):
    """Base exception for errors raised while populating or reading the cache."""

    pass


class ArtifactDownloadError(CacheError):
    """
    Exception raised when populating the cache for an artifact fails.

    Attributes:
        artifact: Identity of the artifact being cached.
        url: The source URL the artifact was fetched from, if it could be built.
    """

    def __init__(
        self,
        message: str,
        artifact: str | None = None,
        url: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.artifact = artifact
        self.url = url


class CacheCorruptError(CacheError):
    """Exception raised when a folder cache entry stays empty or unreadable after repopulation."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        attempts: int = 0,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.path = path
        self.attempts = attempts


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(ModcacheError):
    """
    Exception raised when validation fails.

    Attributes:
        field: The name of the field that failed validation.
        value: The value that failed validation.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field
        self.value = value


class ArtifactParseError(ValidationError):
    """Exception raised when an artifact coordinate or mod identifier is malformed."""

    pass
