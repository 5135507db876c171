"""
modcache: a local cache for Minecraft mod pack artifacts.

Maven libraries and Curseforge mod files are downloaded once into a cache
directory and published into instance folders by symlink (or copy where
symlinks are not allowed).
"""

from .cache import ArtifactCache, Cacheable, CacheStrategy
from .config import CacheSettings, build_cache, load_config
from .publish import LinkPublisher, LinkStrategy, LinkStrategyCell

__all__ = [
    "ArtifactCache",
    "Cacheable",
    "CacheStrategy",
    "CacheSettings",
    "build_cache",
    "load_config",
    "LinkPublisher",
    "LinkStrategy",
    "LinkStrategyCell",
]
