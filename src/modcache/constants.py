"""
Constants and configuration values for modcache.

This module contains the hardcoded values, URLs, limits and other constants
used throughout the artifact cache and download engine.
"""

# Application identity (platformdirs app name, config file, logger)
APP_NAME = "modcache"
CONFIG_FILE_NAME = "modcache.yaml"

# Cache layout under the cache root
MAVEN_CACHE_DIR_NAME = "maven_cache"
CURSEFORGE_CACHE_DIR_NAME = "curse_cache"
DEFAULT_MAVEN_EXTENSION = "jar"

# Curseforge URLs
CURSEFORGE_MODS_URL = "https://www.curseforge.com/minecraft/mc-mods"

# HTTP status handling
HTTP_STATUS_NOT_MODIFIED = 304
REDIRECT_STATUS_CODES = frozenset({301, 302, 307})
HTTP_STATUS_CLIENT_ERROR_MIN = 400
HTTP_STATUS_SERVER_ERROR_MIN = 500
HTTP_STATUS_SERVER_ERROR_MAX = 599

# Download configuration defaults
DEFAULT_CHUNK_SIZE = 8192
DEFAULT_MAX_CONCURRENT_DOWNLOADS = 5
DEFAULT_CONNECTOR_LIMIT = 10
DEFAULT_MAX_REDIRECTS = 10
DEFAULT_FOLDER_CACHE_ATTEMPTS = 3
BYTES_PER_MEGABYTE = 1024 * 1024
FILE_SIZE_MB_LOGGING_THRESHOLD = 1.0

# Partial downloads are written next to their target and renamed into place
TEMP_FILE_PREFIX = "."
TEMP_FILE_SUFFIX = ".part"

# Windows ERROR_PRIVILEGE_NOT_HELD, raised when creating a symlink without rights
WINDOWS_ERROR_PRIVILEGE_NOT_HELD = 1314

# Logging configuration
LOGGER_NAME = "modcache"
LOG_FILE_NAME = "modcache.log"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5

# Environment variable names
LOG_LEVEL_ENV_VAR = "MODCACHE_LOG_LEVEL"
