"""
Curseforge mod files for the modcache cache.

Download links on Curseforge redirect to a CDN URL whose last path segment is
the real jar name, so mod files are cached with the FOLDER strategy under
`<cache root>/<mod id>/<file id>/`.
"""

import re
from dataclasses import dataclass
from pathlib import Path

from yarl import URL

from modcache.cache import Cacheable, CacheStrategy
from modcache.constants import CURSEFORGE_MODS_URL
from modcache.exceptions import ArtifactParseError, InvalidURLError

_MOD_URL_PATTERN = re.compile(
    re.escape(CURSEFORGE_MODS_URL)
    + r"/(?P<id>[^/]+)/(?:download|files)/(?P<version>\d+)(?:/file)?/?$"
)
_MOD_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


@dataclass(frozen=True)
class Mod(Cacheable):
    """A single file of a Curseforge project, identified by project slug and file id."""

    strategy = CacheStrategy.FOLDER

    id: str
    version: int
    cache_root: Path

    @classmethod
    def from_url(cls, url: str, cache_root: Path) -> "Mod":
        """
        Build a Mod from a Curseforge file page or download link, e.g.
        `https://www.curseforge.com/minecraft/mc-mods/jei/files/2803400`.

        Raises:
            ArtifactParseError: If `url` is not a Curseforge mod file URL.
        """
        match = _MOD_URL_PATTERN.match(url.strip())
        if match is None:
            raise ArtifactParseError(
                f"Couldn't parse mod url: {url!r}", field="url", value=url
            )
        return cls(match.group("id"), int(match.group("version")), Path(cache_root))

    def __post_init__(self) -> None:
        if not self.id or self.id in (".", "..") or "/" in self.id or "\\" in self.id:
            raise ArtifactParseError(
                f"Invalid mod id: {self.id!r}", field="id", value=self.id
            )
        try:
            version = int(self.version)
        except (TypeError, ValueError) as e:
            raise ArtifactParseError(
                f"Invalid file id: {self.version!r}",
                field="version",
                value=str(self.version),
            ) from e
        # File ids may arrive as strings from YAML
        object.__setattr__(self, "version", version)
        if self.version < 0:
            raise ArtifactParseError(
                f"Invalid file id: {self.version!r}",
                field="version",
                value=str(self.version),
            )

    def __str__(self) -> str:
        return f"{self.id}/{self.version}"

    def _project_url(self) -> URL:
        if not _MOD_ID_PATTERN.match(self.id):
            raise InvalidURLError(f"Invalid mod id: {self.id!r}", value=self.id)
        return URL(CURSEFORGE_MODS_URL) / self.id

    def project_url(self) -> URL:
        return self._project_url().with_path(self._project_url().path + "/")

    def files_url(self) -> URL:
        return self._project_url() / "files"

    def cached_path(self) -> Path:
        return self.cache_root / self.id / str(self.version)

    def source_url(self) -> URL:
        return self._project_url() / "download" / str(self.version) / "file"
