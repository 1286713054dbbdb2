"""
mcbridge Configuration - Configuration loading and validation.

This module provides the Config class for managing bridge configuration
from global (~/.mcbridge/config.yaml), local (.mcbridge/config.yaml) and
explicit sources, plus command-line and environment overrides.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Raised when there's a configuration error."""

    pass


class ProjectConfig(BaseModel):
    """Configuration for the project the session is rooted at."""

    root: Optional[str] = None
    exclude_patterns: List[str] = Field(
        default_factory=lambda: [
            ".git",
            "node_modules",
            "target",
            "__pycache__",
            ".terraform",
            ".mcbridge",
        ]
    )


class EngineConfig(BaseModel):
    """Configuration for the external engine subprocess."""

    terraform_binary: str = "terraform"
    timeout_seconds: float = Field(default=600.0, gt=0)
    max_output_bytes: int = Field(default=1_048_576, gt=0)
    stream_progress: bool = True
    env: Dict[str, str] = Field(default_factory=dict)


class ConfirmationConfig(BaseModel):
    """Configuration for the destructive-call confirmation handshake."""

    ttl_seconds: float = Field(default=300.0, gt=0)


class FilesConfig(BaseModel):
    """Configuration for the filesystem editor."""

    max_read_bytes: int = Field(default=2_000_000, gt=0)


class LoggingConfig(BaseModel):
    """Configuration for the diagnostic log sink."""

    level: str = "INFO"
    file: Optional[str] = None

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"unknown log level: {value}")
        return level


class BridgeConfig(BaseModel):
    """Complete mcbridge configuration schema."""

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    confirmation: ConfirmationConfig = Field(default_factory=ConfirmationConfig)
    files: FilesConfig = Field(default_factory=FilesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class Config:
    """
    mcbridge configuration manager.

    Handles loading, merging, and validating configuration from:
    - Global: ~/.mcbridge/config.yaml
    - Local: .mcbridge/config.yaml (nearest one walking up from cwd)
    - Explicit: a file passed with ``--config``
    - Overrides: values from command-line flags

    Later sources override earlier ones.

    Example:
        >>> config = Config.load(overrides={"logging": {"level": "DEBUG"}})
        >>> config.merged.engine.timeout_seconds
        600.0
        >>> root = config.resolve_project_root()
    """

    GLOBAL_CONFIG_DIR = Path.home() / ".mcbridge"
    LOCAL_CONFIG_DIR = Path(".mcbridge")
    PROJECT_ROOT_ENV_VARS = ("MCBRIDGE_PROJECT_ROOT", "PROJECT_DIR")

    def __init__(
        self,
        global_config: Optional[Dict[str, Any]] = None,
        local_config: Optional[Dict[str, Any]] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize Config.

        Args:
            global_config: Global configuration dictionary.
            local_config: Local or explicit configuration dictionary.
            overrides: Highest-priority values, usually from CLI flags.
        """
        self._global_config = global_config or {}
        self._local_config = local_config or {}
        self._overrides = overrides or {}
        self._merged: Optional[BridgeConfig] = None

    @classmethod
    def load(
        cls,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "Config":
        """
        Load configuration from default locations.

        Args:
            config_path: Explicit config file. It must exist and replaces
                the local config lookup.
            overrides: Values that win over every file.

        Returns:
            Config instance with loaded configuration.
        """
        global_config = cls._load_yaml(cls.GLOBAL_CONFIG_DIR / "config.yaml")

        if config_path is not None:
            config_path = Path(config_path)
            if not config_path.exists():
                raise ConfigError(f"Config file not found: {config_path}")
            local_config = cls._load_yaml(config_path)
        else:
            local_config = cls._load_yaml(cls._find_local_config())

        return cls(global_config=global_config, local_config=local_config, overrides=overrides)

    @classmethod
    def _load_yaml(cls, path: Optional[Path]) -> Dict[str, Any]:
        """Load YAML file if it exists."""
        if path is None or not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except Exception as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return data

    @classmethod
    def _find_local_config(cls) -> Optional[Path]:
        """Find the local config file by walking up the directory tree."""
        current = Path.cwd()
        while current != current.parent:
            config_path = current / cls.LOCAL_CONFIG_DIR / "config.yaml"
            if config_path.exists():
                return config_path
            current = current.parent
        return None

    def get_merged_config(self) -> Dict[str, Any]:
        """Get the merged configuration as a dictionary."""
        merged = self._deep_merge(self._global_config.copy(), self._local_config)
        return self._deep_merge(merged, self._overrides)

    @property
    def merged(self) -> BridgeConfig:
        """Get the validated merged configuration."""
        if self._merged is None:
            try:
                self._merged = BridgeConfig(**self.get_merged_config())
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration: {e}")
        return self._merged

    def resolve_project_root(self, cli_root: Optional[str] = None) -> Path:
        """
        Decide which directory the session is rooted at.

        Priority:
        1. Command line argument
        2. Environment variable (MCBRIDGE_PROJECT_ROOT, then PROJECT_DIR)
        3. ``project.root`` from configuration
        4. Current directory

        Relative values are taken relative to the current directory. The
        result is not checked for existence; that is a startup concern.
        """
        candidate = cli_root
        if not candidate:
            for var in self.PROJECT_ROOT_ENV_VARS:
                if os.environ.get(var):
                    candidate = os.environ[var]
                    break
        if not candidate:
            candidate = self.merged.project.root

        if not candidate:
            return Path.cwd()

        root = Path(candidate).expanduser()
        if not root.is_absolute():
            root = Path.cwd() / root
        return root

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
