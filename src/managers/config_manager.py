"""
Config Manager

Loads the lifecycle configuration (config/botfarm.yaml) into a validated,
immutable LifecycleConfig. A missing file means defaults; a broken one is a
startup error.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from models.config import LifecycleConfig
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.CONFIG)

CONFIG_FILE_NAME = "botfarm.yaml"


class ConfigError(Exception):
    """Configuration file exists but cannot be read or validated."""


class ConfigManager:
    """
    Lifecycle configuration manager

    Example:
        config_manager = ConfigManager(Path("config"))
        config = config_manager.load()
        timeout = len(fleet) * config.per_worker_stop_allowance
    """

    def __init__(self, config_dir: Union[str, Path], file_name: str = CONFIG_FILE_NAME):
        """
        Initialize ConfigManager

        Args:
            config_dir: Directory holding the configuration files
            file_name: Name of the lifecycle configuration file
        """
        self.config_dir = Path(config_dir)
        self.config_path = self.config_dir / file_name
        self.data: Dict[str, Any] = {}
        self._config: Optional[LifecycleConfig] = None

    @property
    def config(self) -> LifecycleConfig:
        """Loaded configuration (defaults until load() succeeds)."""
        return self._config or LifecycleConfig()

    def load(self) -> LifecycleConfig:
        """
        Load and validate the configuration file.

        Raises:
            ConfigError: File unreadable, not a mapping, or failing validation
        """
        if not self.config_path.exists():
            log.info(f"No {self.config_path.name} found, using defaults")
            self.data = {}
            self._config = LifecycleConfig()
            return self._config

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as ex:
            raise ConfigError(f"Failed to read {self.config_path}: {ex}") from ex

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigError(f"{self.config_path} must contain a mapping, got {type(raw).__name__}")

        try:
            config = LifecycleConfig.model_validate(raw)
        except ValidationError as ex:
            raise ConfigError(f"Invalid {self.config_path.name}: {ex}") from ex

        self.data = raw
        self._config = config
        log.info(f"Loaded {self.config_path.name}", keys=len(raw))
        return config
