"""
Configuration system for flipflow-queue.

This package provides typed configuration classes with:
- Dataclass-based settings with validation
- Environment variable loading
- YAML/TOML file loading
- Sensible defaults with override capability
"""

from .base import LogFormat, LogLevel
from .logging import LoggingConfig
from .queue import QueueConfig
from .settings import Settings, configure, get_settings, load_env

__all__ = [
    # Types
    "LogLevel",
    "LogFormat",
    # Section configs
    "QueueConfig",
    "LoggingConfig",
    # Master config
    "Settings",
    # Global functions
    "get_settings",
    "configure",
    "load_env",
]
