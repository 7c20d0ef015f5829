"""
Settings master configuration and global helpers.
"""

from __future__ import annotations

import dataclasses
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from dotenv import find_dotenv, load_dotenv

from ..config_schema import CONFIG_SCHEMA
from ..errors import InvalidConfigError
from .logging import LoggingConfig
from .queue import QueueConfig


@dataclass
class Settings:
    """
    Master configuration for the job queue.

    This aggregates all configuration sections into a single object
    that can be loaded from environment variables, files, or constructed
    programmatically.
    """

    queue: QueueConfig = field(default_factory=QueueConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, prefix: str = "FLIPFLOW_") -> Settings:
        """
        Load settings from environment variables.

        Environment variables are prefixed (default: FLIPFLOW_) and use
        underscore-separated paths for nested settings.

        Example:
            FLIPFLOW_QUEUE_MAX_CONCURRENT=5
            FLIPFLOW_QUEUE_RETRY_DELAY=2.5
            FLIPFLOW_LOG_LEVEL=DEBUG
        """
        queue_overrides: dict[str, Any] = {}
        for name, parse in (
            ("max_concurrent", int),
            ("max_retries", int),
            ("retry_delay", float),
            ("job_timeout", float),
            ("cleanup_interval", float),
            ("max_queue_size", int),
            ("job_retention", float),
        ):
            env_var = f"{prefix}QUEUE_{name.upper()}"
            if (raw := os.getenv(env_var)) is not None:
                try:
                    queue_overrides[name] = parse(raw)
                except ValueError as exc:
                    raise InvalidConfigError(f"{env_var} must be a number, got {raw!r}") from exc

        logging_overrides: dict[str, Any] = {}
        if level := os.getenv(f"{prefix}LOG_LEVEL"):
            logging_overrides["level"] = level.upper()
        if log_format := os.getenv(f"{prefix}LOG_FORMAT"):
            logging_overrides["format"] = log_format.lower()

        return cls(
            queue=QueueConfig(**queue_overrides),
            logging=LoggingConfig(**logging_overrides),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> Settings:
        """
        Load settings from a YAML or TOML file.

        Args:
            path: Path to configuration file (.yaml, .yml, or .toml)

        Returns:
            Settings object with values from file
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        suffix = path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        elif suffix == ".toml":
            with open(path, "rb") as f:
                data = tomllib.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {suffix}")

        return cls._from_dict(data)

    @classmethod
    def default(cls) -> Settings:
        """Create default configuration."""
        return cls()

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> Settings:
        """
        Create Settings from a dictionary.

        The dictionary is validated against the configuration schema
        before the typed sections are built.
        """
        try:
            jsonschema.validate(instance=data, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise InvalidConfigError(f"Configuration validation failed: {e.message}") from e

        return cls(
            queue=QueueConfig(**data.get("queue", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary."""
        return dataclasses.asdict(self)


# =============================================================================
# Global Settings & Helpers
# =============================================================================

_global_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance, creating from the environment if needed."""
    global _global_settings
    if _global_settings is None:
        _global_settings = Settings.from_env()
    return _global_settings


def configure(settings: Settings | None = None, **kwargs) -> Settings:
    """
    Configure global settings.

    Args:
        settings: Settings object to use globally
        **kwargs: Override specific sections (``queue=``, ``logging=``)

    Returns:
        The configured Settings object
    """
    global _global_settings

    if settings is not None:
        _global_settings = settings
    elif _global_settings is None:
        _global_settings = Settings.from_env()

    for key, value in kwargs.items():
        if hasattr(_global_settings, key):
            setattr(_global_settings, key, value)

    return _global_settings


def load_env(path: str | None = None, *, override: bool = False) -> bool:
    """
    Load environment variables from a .env file.

    Args:
        path: Optional path to a .env file. If not provided, uses find_dotenv().
        override: Whether to override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    env_path = path or find_dotenv(usecwd=True)
    if not env_path:
        return False
    return load_dotenv(env_path, override=override)


__all__ = ["Settings", "get_settings", "configure", "load_env"]
