"""Configuration loading."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from devspawn.errors import ConfigError
from devspawn.models.config import DevspawnConfig
from devspawn.utils.templates import merge_dicts


logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DEVSPAWN_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/devspawn/config.yaml")

# Auto mode overrides: variable -> (section, field)
ENV_OVERRIDES = {
    "CORES": ("container", "cores"),
    "RAM": ("container", "memory_mb"),
    "STORAGE": ("container", "disk_gb"),
    "CT_NAME": ("container", "name"),
}


class ConfigManager:
    """Loads the optional YAML config file and applies overrides."""

    def __init__(self, config_path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ
        self.config_path = self._locate(config_path)
        self.yaml = YAML(typ="safe")
        self.config: Optional[DevspawnConfig] = None
        self.container_id: Optional[int] = None

    def _locate(self, config_path: Optional[Path]) -> Optional[Path]:
        if config_path is not None:
            path = Path(config_path).expanduser()
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path

        from_env = self.environ.get(CONFIG_ENV_VAR)
        if from_env:
            path = Path(from_env).expanduser()
            if not path.exists():
                raise ConfigError(f"Config file from ${CONFIG_ENV_VAR} not found: {path}")
            return path

        default = DEFAULT_CONFIG_PATH.expanduser()
        return default if default.exists() else None

    def load(self, apply_env: bool = False) -> DevspawnConfig:
        """Load and validate configuration.

        ``apply_env`` enables the auto mode environment overrides.
        """
        data: Dict[str, Any] = {}
        if self.config_path is not None:
            logger.info(f"Loading configuration from {self.config_path}")
            data = self._read_yaml(self.config_path)

        defaults = DevspawnConfig().model_dump()
        merged = merge_dicts(defaults, data)

        if apply_env:
            merged = self._apply_env_overrides(merged)

        try:
            self.config = DevspawnConfig(**merged)
        except ValidationError as e:
            logger.error(f"Invalid configuration: {e}")
            raise ConfigError(f"Invalid configuration: {e}") from e

        return self.config

    def _read_yaml(self, path: Path) -> Dict[str, Any]:
        try:
            with open(path, "r") as f:
                data = self.yaml.load(f)
        except (OSError, YAMLError) as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: top level must be a mapping")
        return data

    def _apply_env_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        for var, (section, field) in ENV_OVERRIDES.items():
            value = self.environ.get(var)
            if not value:
                continue
            logger.debug(f"Override {section}.{field} from ${var}")
            data = merge_dicts(data, {section: {field: value}})

        ct_id = self.environ.get("CT_ID")
        if ct_id:
            try:
                self.container_id = int(ct_id)
            except ValueError:
                raise ConfigError(f"CT_ID must be an integer, got {ct_id!r}")

        return data
