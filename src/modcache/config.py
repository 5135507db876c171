"""
Configuration for modcache.

Settings come from an optional `modcache.yaml` in the platformdirs config
directory. Every key is optional; invalid values are logged and replaced by
their defaults rather than aborting, matching how download settings are
treated elsewhere in the package.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import platformdirs
import yaml

from modcache.constants import (
    APP_NAME,
    CONFIG_FILE_NAME,
    CURSEFORGE_CACHE_DIR_NAME,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_FOLDER_CACHE_ATTEMPTS,
    DEFAULT_MAX_CONCURRENT_DOWNLOADS,
    DEFAULT_MAX_REDIRECTS,
    MAVEN_CACHE_DIR_NAME,
)
from modcache.exceptions import ConfigFileError
from modcache.log_utils import logger

from .cache import ArtifactCache
from .download.http_client import HttpClient
from .download.manager import DownloadManager
from .download.redirects import RedirectFollower
from .publish import DEFAULT_LINK_STRATEGY, LinkPublisher, LinkStrategyCell

CONFIG_DIR = platformdirs.user_config_dir(APP_NAME)
CONFIG_FILE = os.path.join(CONFIG_DIR, CONFIG_FILE_NAME)


def default_cache_root() -> Path:
    return Path(platformdirs.user_cache_dir(APP_NAME))


def maven_cache_dir(cache_root: Path) -> Path:
    """Root under which Maven artifacts are laid out by coordinate."""
    return Path(cache_root) / MAVEN_CACHE_DIR_NAME


def curse_cache_dir(cache_root: Path) -> Path:
    """Root under which Curseforge files get one folder per mod and file id."""
    return Path(cache_root) / CURSEFORGE_CACHE_DIR_NAME


def load_config(path: Optional[Union[str, Path]] = None) -> Optional[Dict[str, Any]]:
    """
    Load the modcache configuration YAML.

    Parameters:
        path (str | Path | None): Explicit config file to read. When None, the
            platformdirs-managed CONFIG_FILE is used.

    Returns:
        dict | None: The parsed configuration, an empty dict for an empty file,
        or None if no configuration file exists.

    Raises:
        ConfigFileError: If the file cannot be read, is not valid YAML, or
            does not contain a mapping.
    """
    config_path = str(path) if path is not None else CONFIG_FILE
    if not os.path.exists(config_path):
        return None

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except OSError as e:
        raise ConfigFileError(
            "Could not read configuration file", path=config_path, details=str(e)
        ) from e
    except yaml.YAMLError as e:
        raise ConfigFileError(
            "Configuration file is not valid YAML", path=config_path, details=str(e)
        ) from e

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigFileError(
            "Configuration file must contain a mapping",
            path=config_path,
            details=f"got {type(config).__name__}",
        )
    logger.debug("Loaded configuration from %s", config_path)
    return config


def _get_int(config: Dict[str, Any], key: str, default: int, minimum: int) -> int:
    """
    Read an integer setting, falling back to `default` on parse errors.

    Values below `minimum` are clamped to `minimum`. Both cases log a warning.
    """
    raw_value = config.get(key, default)
    try:
        parsed_value = int(raw_value)
    except (TypeError, ValueError):
        logger.warning(
            "Invalid %s value %r; using default of %d", key, raw_value, default
        )
        return default

    if parsed_value < minimum:
        logger.warning(
            "%s must be >= %d; clamping %d to %d",
            key,
            minimum,
            parsed_value,
            minimum,
        )
        return minimum
    return parsed_value


def _get_timeout(config: Dict[str, Any]) -> Optional[float]:
    raw_value = config.get("REQUEST_TIMEOUT")
    if raw_value is None:
        return None
    try:
        parsed_value = float(raw_value)
    except (TypeError, ValueError):
        logger.warning("Invalid REQUEST_TIMEOUT value %r; disabling timeout", raw_value)
        return None
    if parsed_value <= 0:
        logger.warning(
            "REQUEST_TIMEOUT must be positive; disabling timeout (got %s)", raw_value
        )
        return None
    return parsed_value


@dataclass(frozen=True)
class CacheSettings:
    cache_root: Path
    max_concurrent_downloads: int = DEFAULT_MAX_CONCURRENT_DOWNLOADS
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    folder_cache_attempts: int = DEFAULT_FOLDER_CACHE_ATTEMPTS
    request_timeout: Optional[float] = None
    chunk_size: int = DEFAULT_CHUNK_SIZE

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> "CacheSettings":
        """
        Build settings from a loaded configuration dict.

        `None` (no configuration file) yields the defaults. `CACHE_DIR`
        supports `~` expansion.
        """
        config = config or {}
        raw_cache_dir = config.get("CACHE_DIR")
        if raw_cache_dir:
            cache_root = Path(os.path.expanduser(str(raw_cache_dir)))
        else:
            cache_root = default_cache_root()

        return cls(
            cache_root=cache_root,
            max_concurrent_downloads=_get_int(
                config,
                "MAX_CONCURRENT_DOWNLOADS",
                DEFAULT_MAX_CONCURRENT_DOWNLOADS,
                1,
            ),
            max_redirects=_get_int(config, "MAX_REDIRECTS", DEFAULT_MAX_REDIRECTS, 0),
            folder_cache_attempts=_get_int(
                config, "FOLDER_CACHE_ATTEMPTS", DEFAULT_FOLDER_CACHE_ATTEMPTS, 1
            ),
            request_timeout=_get_timeout(config),
            chunk_size=_get_int(config, "CHUNK_SIZE", DEFAULT_CHUNK_SIZE, 1),
        )

    @property
    def maven_root(self) -> Path:
        return maven_cache_dir(self.cache_root)

    @property
    def curse_root(self) -> Path:
        return curse_cache_dir(self.cache_root)


def build_cache(
    settings: CacheSettings, cell: LinkStrategyCell = DEFAULT_LINK_STRATEGY
) -> ArtifactCache:
    """
    Assemble an ArtifactCache from settings.

    The returned cache owns its HTTP session; use it as an async context
    manager or call `close()` when done.
    """
    client = HttpClient(timeout=settings.request_timeout)
    redirects = RedirectFollower(client, max_redirects=settings.max_redirects)
    manager = DownloadManager(
        redirects,
        max_concurrent=settings.max_concurrent_downloads,
        chunk_size=settings.chunk_size,
    )
    return ArtifactCache(
        manager,
        publisher=LinkPublisher(cell),
        max_folder_attempts=settings.folder_cache_attempts,
    )
