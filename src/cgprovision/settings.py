"""Runtime settings: XDG directory roots plus an optional ``settings.yaml``.

Precedence, highest first: CGPROVISION_* environment variables, values in
``<config dir>/settings.yaml``, XDG defaults.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from cgprovision.constants import Constants
from cgprovision.common.config_files import load_document
from cgprovision.common.errors import ConfigError, DecodeError

logger = logging.getLogger(__name__)


def _xdg_dir(env: Mapping[str, str], variable: str, fallback: str) -> Path:
    value = env.get(variable)
    base = Path(value) if value else Path.home() / fallback
    return base / Constants.APP_DIR_NAME


@dataclass
class Settings:
    """Directory roots and tunables shared by every provisioning layer."""

    cache_dir: Path
    config_dir: Path
    data_dir: Path
    github_token: Optional[str] = None
    component_owner: str = Constants.COMPONENT_OWNER
    max_concurrency: int = Constants.MAX_CONCURRENCY

    @property
    def http_cache_dir(self) -> Path:
        return self.cache_dir / Constants.HTTP_CACHE_SUBDIR

    @property
    def components_dir(self) -> Path:
        return self.data_dir / Constants.COMPONENTS_SUBDIR

    @property
    def modules_dir(self) -> Path:
        return self.data_dir / Constants.MODULES_SUBDIR

    @property
    def modules_file(self) -> Path:
        return self.config_dir / Constants.MODULES_FILE

    @property
    def overrides_file(self) -> Path:
        return self.config_dir / Constants.OVERRIDES_FILE

    @classmethod
    def load(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the environment and ``settings.yaml``.

        Raises:
            ConfigError: ``settings.yaml`` exists but is malformed.
        """
        env = os.environ if env is None else env
        config_dir = Path(env[Constants.ENV_CONFIG_DIR]) if env.get(Constants.ENV_CONFIG_DIR) else _xdg_dir(
            env, "XDG_CONFIG_HOME", ".config"
        )
        settings = cls(
            cache_dir=_xdg_dir(env, "XDG_CACHE_HOME", ".cache"),
            config_dir=config_dir,
            data_dir=_xdg_dir(env, "XDG_DATA_HOME", ".local/share"),
            github_token=env.get(Constants.ENV_GITHUB_TOKEN) or None,
        )
        settings.apply(_read_settings_file(config_dir / Constants.SETTINGS_FILE))

        if env.get(Constants.ENV_CACHE_DIR):
            settings.cache_dir = Path(env[Constants.ENV_CACHE_DIR])
        if env.get(Constants.ENV_DATA_DIR):
            settings.data_dir = Path(env[Constants.ENV_DATA_DIR])
        return settings

    def apply(self, values: Dict[str, Any]) -> None:
        """Overlay ``values`` onto these settings; unknown keys are ignored."""
        known = {f.name: f for f in fields(self)}
        for key, value in values.items():
            if key not in known or key == "config_dir":
                logger.warning("Ignoring unknown setting '%s'", key)
                continue
            if value is None:
                continue
            if key in ("cache_dir", "data_dir"):
                value = Path(str(value)).expanduser()
            elif key == "max_concurrency":
                try:
                    value = int(value)
                except (TypeError, ValueError) as exc:
                    raise ConfigError(f"invalid value for max_concurrency: {value!r}") from exc
                if value < 1:
                    raise ConfigError(f"max_concurrency must be at least 1, got {value}")
            else:
                value = str(value)
            setattr(self, key, value)


def _read_settings_file(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = load_document(path)
    except (OSError, DecodeError) as exc:
        raise ConfigError(f"failed to load {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping of settings")
    logger.debug("Loaded settings from %s", path)
    return data
