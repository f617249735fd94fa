import os
from pathlib import Path
from string import Template
from typing import Optional

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from starindex.models.config import StarIndexConfig

logger = structlog.get_logger()


class ConfigValidationError(Exception):
    """Configuration validation failed"""

    pass


class ConfigManager:
    """Loads the YAML configuration with ${VAR} substitution from the environment"""

    def __init__(
        self,
        config_path: str = "config/starindex.yaml",
        project_root: Optional[Path] = None,
    ):
        self.config_path = Path(config_path)
        self.project_root = project_root or Path.cwd()
        self.env_loaded = False
        self._config: Optional[StarIndexConfig] = None

    def load_config(self) -> StarIndexConfig:
        """Load and validate configuration"""
        if self._config:
            return self._config

        # 1. Load environment
        if not self.env_loaded:
            load_dotenv()
            self.env_loaded = True

        # 2. Check file existence
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        # 3. Read YAML
        try:
            with open(self.config_path) as f:
                raw_content = f.read()
        except OSError as e:
            raise ConfigValidationError(f"Failed to read config file: {e}")

        # 4. Substitute env vars
        try:
            template = Template(raw_content)
            substituted_content = template.safe_substitute(os.environ)
            config_data = yaml.safe_load(substituted_content) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML: {e}")

        if not isinstance(config_data, dict):
            raise ConfigValidationError("Configuration root must be a mapping")

        # 5. Validate with Pydantic
        try:
            self._config = StarIndexConfig(**config_data)
        except ValidationError as e:
            raise ConfigValidationError(f"Invalid configuration: {e}")

        self._resolve_paths(self._config)
        logger.info(
            "config_loaded",
            index_path=self._config.index.index_path,
            earliest_year=self._config.index.earliest_year,
        )
        return self._config

    def _resolve_paths(self, config: StarIndexConfig) -> None:
        """Anchor relative data paths at the project root"""
        for attr in ("index_path", "checkpoint_path"):
            path = Path(getattr(config.index, attr))
            if not path.is_absolute():
                setattr(config.index, attr, str(self.project_root / path))
