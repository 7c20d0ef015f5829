"""
Tests for the configuration system.
"""
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest

from flipflow_queue.config import (
    LoggingConfig,
    QueueConfig,
    Settings,
    configure,
    get_settings,
    load_env,
)
from flipflow_queue.config import settings as settings_module
from flipflow_queue.errors import InvalidConfigError


@pytest.fixture
def reset_global_settings():
    """Restore the global settings after a test."""
    saved = settings_module._global_settings
    settings_module._global_settings = None
    yield
    settings_module._global_settings = saved


class TestQueueConfig:
    """Test queue configuration."""

    def test_defaults(self):
        """Test default values."""
        config = QueueConfig()

        assert config.max_concurrent == 3
        assert config.max_retries == 3
        assert config.retry_delay == 5.0
        assert config.job_timeout == 300.0
        assert config.cleanup_interval == 600.0
        assert config.max_queue_size == 1000
        assert config.job_retention == 3600.0

    def test_zero_concurrency_allowed(self):
        """Test that 0 is a valid concurrency limit."""
        assert QueueConfig(max_concurrent=0).max_concurrent == 0

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"max_concurrent": -1}, "max_concurrent cannot be negative"),
            ({"max_retries": -1}, "max_retries cannot be negative"),
            ({"retry_delay": -0.1}, "retry_delay cannot be negative"),
            ({"job_timeout": 0}, "job_timeout must be positive"),
            ({"cleanup_interval": 0}, "cleanup_interval must be positive"),
            ({"max_queue_size": 0}, "max_queue_size must be at least 1"),
            ({"job_retention": -1}, "job_retention cannot be negative"),
        ],
    )
    def test_validation(self, kwargs, message):
        """Test validation in __post_init__."""
        with pytest.raises(ValueError, match=message):
            QueueConfig(**kwargs)


class TestLoggingConfig:
    """Test logging configuration."""

    def test_defaults(self):
        """Test default values."""
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.format == "text"
        assert config.include_timestamp is True

    def test_validation(self):
        """Test invalid level and format."""
        with pytest.raises(ValueError, match="Invalid log level"):
            LoggingConfig(level="LOUD")
        with pytest.raises(ValueError, match="Invalid log format"):
            LoggingConfig(format="xml")


class TestSettings:
    """Test the master settings object."""

    def test_from_env(self, monkeypatch):
        """Test loading from environment variables."""
        monkeypatch.setenv("FLIPFLOW_QUEUE_MAX_CONCURRENT", "5")
        monkeypatch.setenv("FLIPFLOW_QUEUE_RETRY_DELAY", "2.5")
        monkeypatch.setenv("FLIPFLOW_LOG_LEVEL", "debug")
        monkeypatch.setenv("FLIPFLOW_LOG_FORMAT", "JSON")

        settings = Settings.from_env()

        assert settings.queue.max_concurrent == 5
        assert settings.queue.retry_delay == 2.5
        assert settings.queue.max_retries == 3
        assert settings.logging.level == "DEBUG"
        assert settings.logging.format == "json"

    def test_from_env_custom_prefix(self, monkeypatch):
        """Test a custom prefix."""
        monkeypatch.setenv("APP_QUEUE_MAX_QUEUE_SIZE", "10")
        assert Settings.from_env(prefix="APP_").queue.max_queue_size == 10

    def test_from_env_bad_number(self, monkeypatch):
        """Test that unparsable values raise InvalidConfigError."""
        monkeypatch.setenv("FLIPFLOW_QUEUE_MAX_RETRIES", "many")
        with pytest.raises(InvalidConfigError, match="FLIPFLOW_QUEUE_MAX_RETRIES"):
            Settings.from_env()

    def test_from_yaml(self):
        """Test loading a YAML file."""
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "queue.yaml"
            path.write_text(
                "queue:\n"
                "  max_concurrent: 2\n"
                "  job_timeout: 30\n"
                "logging:\n"
                "  level: WARNING\n"
            )

            settings = Settings.from_file(path)

        assert settings.queue.max_concurrent == 2
        assert settings.queue.job_timeout == 30
        assert settings.logging.level == "WARNING"

    def test_from_toml(self):
        """Test loading a TOML file."""
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "queue.toml"
            path.write_text('[queue]\nmax_queue_size = 50\nretry_delay = 0.5\n\n[logging]\nformat = "json"\n')

            settings = Settings.from_file(path)

        assert settings.queue.max_queue_size == 50
        assert settings.queue.retry_delay == 0.5
        assert settings.logging.format == "json"

    def test_from_file_schema_violation(self):
        """Test that unknown or mistyped keys fail validation."""
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "queue.yaml"
            path.write_text("queue:\n  max_concurrent: -1\n")
            with pytest.raises(InvalidConfigError, match="validation failed"):
                Settings.from_file(path)

            path.write_text("queue:\n  max_workers: 4\n")
            with pytest.raises(InvalidConfigError):
                Settings.from_file(path)

    def test_from_file_errors(self):
        """Test missing files and unsupported formats."""
        with pytest.raises(FileNotFoundError):
            Settings.from_file("/nonexistent/queue.yaml")

        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "queue.ini"
            path.write_text("[queue]\n")
            with pytest.raises(ValueError, match="Unsupported"):
                Settings.from_file(path)

    def test_to_dict(self):
        """Test serialization."""
        d = Settings(queue=QueueConfig(max_concurrent=1)).to_dict()
        assert d["queue"]["max_concurrent"] == 1
        assert d["logging"]["level"] == "INFO"


class TestGlobalSettings:
    """Test global settings helpers."""

    def test_get_settings_reads_env(self, monkeypatch, reset_global_settings):
        """Test lazy creation from the environment."""
        monkeypatch.setenv("FLIPFLOW_QUEUE_MAX_CONCURRENT", "7")
        assert get_settings().queue.max_concurrent == 7
        assert get_settings() is get_settings()

    def test_configure(self, reset_global_settings):
        """Test replacing settings and sections."""
        settings = configure(Settings())
        assert get_settings() is settings

        configure(queue=QueueConfig(max_retries=0))
        assert get_settings().queue.max_retries == 0

    def test_load_env(self, monkeypatch):
        """Test loading a .env file."""
        monkeypatch.setenv("FLIPFLOW_QUEUE_JOB_TIMEOUT", "1")
        monkeypatch.delenv("FLIPFLOW_QUEUE_JOB_TIMEOUT")
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / ".env"
            path.write_text("FLIPFLOW_QUEUE_JOB_TIMEOUT=42\n")

            assert load_env(str(path)) is True

        assert Settings.from_env().queue.job_timeout == 42.0
