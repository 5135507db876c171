"""
Maven artifacts for the modcache cache.

A coordinate `group:artifact:version[:classifier][@extension]` maps to the
standard repository layout
`<group path>/<artifact>/<version>/<artifact>-<version>[-<classifier>].<extension>`,
which is used both under the repository URL and under the local cache root.
"""

import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import List, Optional

import aiofiles
from yarl import URL

from modcache.cache import ArtifactCache, Cacheable, CacheStrategy
from modcache.constants import DEFAULT_CHUNK_SIZE, DEFAULT_MAVEN_EXTENSION
from modcache.exceptions import ArtifactParseError, FileSystemError, InvalidURLError
from modcache.log_utils import logger

# Characters that would let a coordinate field escape its directory
_UNSAFE_FIELD = re.compile(r"[/\\:@]|^\.{1,2}$")
_SHA1_HEX = re.compile(r"^[0-9a-fA-F]{40}$")


class VerifyResult(Enum):
    GOOD = "good"
    BAD = "bad"
    NOT_IN_CACHE = "not_in_cache"


def _check_field(name: str, value: str) -> None:
    if not value or _UNSAFE_FIELD.search(value):
        raise ArtifactParseError(
            f"Invalid Maven {name}: {value!r}", field=name, value=value
        )


@dataclass(frozen=True)
class Artifact:
    """A Maven coordinate."""

    group: str
    artifact: str
    version: str
    classifier: Optional[str] = None
    extension: Optional[str] = None

    def __post_init__(self) -> None:
        for part in self.group.split("."):
            _check_field("group", part)
        _check_field("artifact", self.artifact)
        _check_field("version", self.version)
        if self.classifier is not None:
            _check_field("classifier", self.classifier)
        if self.extension is not None:
            _check_field("extension", self.extension)

    @classmethod
    def parse(cls, coordinate: str) -> "Artifact":
        """
        Parse `group:artifact:version[:classifier][@extension]`.

        Raises:
            ArtifactParseError: If the coordinate does not have 3 or 4 parts.
        """
        extension: Optional[str] = None
        body = coordinate
        if "@" in coordinate:
            body, extension = coordinate.rsplit("@", 1)

        parts = body.split(":")
        if len(parts) not in (3, 4):
            raise ArtifactParseError(
                f"Expected group:artifact:version[:classifier][@extension], got {coordinate!r}",
                field="coordinate",
                value=coordinate,
            )
        classifier = parts[3] if len(parts) == 4 else None
        return cls(parts[0], parts[1], parts[2], classifier, extension)

    def __str__(self) -> str:
        coordinate = f"{self.group}:{self.artifact}:{self.version}"
        if self.classifier is not None:
            coordinate += f":{self.classifier}"
        if self.extension is not None:
            coordinate += f"@{self.extension}"
        return coordinate

    def filename(self, include_classifier: bool = True) -> str:
        classifier = ""
        if include_classifier and self.classifier is not None:
            classifier = f"-{self.classifier}"
        extension = self.extension or DEFAULT_MAVEN_EXTENSION
        return f"{self.artifact}-{self.version}{classifier}.{extension}"

    def path_parts(self) -> List[str]:
        return [*self.group.split("."), self.artifact, self.version, self.filename()]

    def to_path(self) -> PurePosixPath:
        return PurePosixPath(*self.path_parts())

    def resolve(self, repo_url: str, cache_root: Path) -> "ResolvedArtifact":
        """Bind this coordinate to the repository it is fetched from and the cache it is stored in."""
        return ResolvedArtifact(self, repo_url, Path(cache_root))


@dataclass(frozen=True)
class ResolvedArtifact(Cacheable):
    """A Maven artifact together with its repository; cached as a single file."""

    strategy = CacheStrategy.FILE

    artifact: Artifact
    repo_url: str
    cache_root: Path

    def cached_path(self) -> Path:
        return self.cache_root.joinpath(*self.artifact.path_parts())

    def source_url(self) -> URL:
        try:
            base = URL(self.repo_url)
        except (TypeError, ValueError) as e:
            raise InvalidURLError(
                f"Invalid repository URL: {self.repo_url!r}", value=self.repo_url
            ) from e
        if not base.is_absolute() or base.scheme not in ("http", "https"):
            raise InvalidURLError(
                f"Repository URL must be absolute http(s): {self.repo_url!r}",
                value=self.repo_url,
            )
        url = base
        for part in self.artifact.path_parts():
            url = url / part
        return url

    def sha1_url(self) -> URL:
        url = self.source_url()
        return url.with_name(f"{url.name}.sha1")

    def installed_name(self, include_classifier: bool = True) -> str:
        """
        Filename to install under.

        Some libraries are expected on the classpath without their classifier,
        e.g. `forge-1.12.2-14.23.5.2847.jar` for the `universal` jar.
        """
        return self.artifact.filename(include_classifier=include_classifier)

    def describe(self) -> str:
        return f"{self.artifact} from {self.repo_url}"


async def _sha1_of_file(path: Path) -> str:
    digest = hashlib.sha1()
    try:
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(DEFAULT_CHUNK_SIZE)
                if not chunk:
                    break
                digest.update(chunk)
    except OSError as e:
        raise FileSystemError(f"Failed to read cached file: {e}", path=str(path)) from e
    return digest.hexdigest()


def _parse_sha1_body(body: bytes) -> Optional[str]:
    # Repositories publish either the bare digest or "<digest>  <filename>"
    text = body.decode("ascii", errors="replace").strip()
    if not text:
        return None
    token = text.split()[0]
    if not _SHA1_HEX.match(token):
        return None
    return token.lower()


async def verify_cached(cache: ArtifactCache, resolved: ResolvedArtifact) -> VerifyResult:
    """
    Compare the SHA-1 of the cached file with the repository's published `.sha1`.

    Nothing is downloaded when the artifact is not cached.

    Raises:
        DownloadError: Fetching the checksum failed.
        InvalidURLError: The checksum URL could not be built.
        FileSystemError: The cached file could not be read.
    """
    if not await cache.is_cached(resolved):
        return VerifyResult.NOT_IN_CACHE

    sha_url = resolved.sha1_url()
    local_digest = await _sha1_of_file(resolved.cached_path())
    remote_digest = _parse_sha1_body(await cache.manager.fetch_bytes(sha_url))

    if remote_digest is None:
        logger.warning("Unrecognised checksum published at %s", sha_url)
        return VerifyResult.BAD
    if remote_digest != local_digest:
        logger.warning(
            "Checksum mismatch for %s: expected %s, cached file has %s",
            resolved.artifact,
            remote_digest,
            local_digest,
        )
        return VerifyResult.BAD
    return VerifyResult.GOOD
