"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    RESOLUTION_ERROR = 3
    CONFIG_ERROR = 4


class ProviderNames(Enum):
    """Binary sources supported by the program.

    Args:
        Enum (string): Provider names as they appear in module configuration.
    """

    GITHUB = "github"
    LOCAL = "local"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    APP_DIR_NAME = "codegame"
    LOG_FORMAT = "[%(levelname)s] %(message)s"

    # Timeouts in seconds
    REQUEST_TIMEOUT = None  # file downloads may take arbitrarily long
    JSON_REQUEST_TIMEOUT = 10
    TLS_PROBE_TIMEOUT = 5

    # Cache ages in seconds
    VERSIONS_CACHE_MAX_AGE = 24 * 60 * 60

    # Remote conventions
    GITHUB_API_BASE = "https://api.github.com"
    GITHUB_BASE = "https://github.com"
    GITHUB_RAW_BASE = "https://raw.githubusercontent.com"
    COMPONENT_OWNER = "code-game-project"
    TAGS_URL = "{api}/repos/{owner}/{repo}/tags?per_page=100"
    RELEASE_ASSET_URL = "{base}/{owner}/{repo}/releases/download/{tag}/{asset}"
    COMPONENT_VERSIONS_URL = "{raw}/{owner}/{name}/main/versions.json"

    # Cache layout
    HTTP_CACHE_SUBDIR = "http"
    ETAG_SUBDIR = "etag"
    COMPONENTS_SUBDIR = "components"
    MODULES_SUBDIR = "modules"
    TEMP_SUFFIX = ".temp"
    PARTIAL_SUFFIX = ".part"
    DOWNLOAD_CHUNK_SIZE = 32 * 1024

    # Configuration files (under the config dir)
    MODULES_FILE = "lang_modules.json"
    OVERRIDES_FILE = "overrides.json"
    SETTINGS_FILE = "settings.yaml"

    # Environment variables
    ENV_LOG_LEVEL = "CGPROVISION_LOG_LEVEL"
    ENV_CACHE_DIR = "CGPROVISION_CACHE_DIR"
    ENV_CONFIG_DIR = "CGPROVISION_CONFIG_DIR"
    ENV_DATA_DIR = "CGPROVISION_DATA_DIR"
    ENV_GITHUB_TOKEN = "GITHUB_TOKEN"
    ENV_ACTION_DATA_FILE = "CG_MODULE_ACTION_DATA_FILE"

    MAX_CONCURRENCY = 4
