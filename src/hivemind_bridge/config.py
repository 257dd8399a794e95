"""Configuration management for the HiveMind bridge.

This module provides centralized configuration with support for:
- Environment variables (primary)
- Sensible defaults for all settings
- Type validation via Pydantic
- Easy testing through config overrides

Environment Variables:
    HIVEMIND_EXECUTABLE: Path to the worker executable
        (default: ../hive-engine/.build/release/HiveMind)
    HIVEMIND_WORKING_DIR: Directory a relative executable is resolved against
        (default: current directory)
    HIVEMIND_WORKER_ARGS: JSON list of extra worker arguments (default: [])
    HIVEMIND_RESPONSE_DELAY: Seconds to wait after "play" before reading (default: 12)
    HIVEMIND_POLL_INTERVAL: Seconds between re-reads while polling (default: 0.25)
    HIVEMIND_MAX_WAIT: Overall seconds to keep polling after "play" (default: unset)
    HIVEMIND_STRING_AWARE_EXTRACTION: Ignore braces inside JSON strings (default: true)
    HIVEMIND_TERMINATE_TIMEOUT: Seconds to wait for exit before killing (default: 5)
    HIVEMIND_LOG_LEVEL: Logging level (default: INFO)

Usage:
    from hivemind_bridge.config import get_config, BridgeConfig

    config = get_config()
    delay = config.response_delay

    # For testing, create a custom config
    test_config = BridgeConfig(executable="/usr/bin/worker", response_delay=0.1)
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hivemind_bridge.protocol import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RESPONSE_DELAY,
    DEFAULT_TERMINATE_TIMEOUT,
)

DEFAULT_EXECUTABLE = "../hive-engine/.build/release/HiveMind"


class BridgeConfig(BaseSettings):
    """Bridge configuration with environment variable support.

    All settings can be overridden via environment variables prefixed with
    HIVEMIND_. For example, HIVEMIND_RESPONSE_DELAY=3 sets response_delay to 3.

    Attributes:
        executable: Path to the worker executable
        working_dir: Base directory for a relative executable
        worker_args: Extra arguments passed to the worker
        response_delay: Fixed wait after "play" before the first read
        poll_interval: Wait between re-reads when polling
        max_wait: Overall polling budget measured from "play"
        string_aware_extraction: Skip braces inside JSON string literals
        terminate_timeout: Grace period before a worker is killed
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    model_config = SettingsConfigDict(
        env_prefix="HIVEMIND_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Worker location
    executable: str = Field(
        default=DEFAULT_EXECUTABLE,
        min_length=1,
        description="Path to the worker executable",
    )
    working_dir: Path | None = Field(
        default=None,
        description="Directory a relative executable is resolved against",
    )
    worker_args: list[str] = Field(
        default_factory=list,
        description="Extra arguments passed to the worker after the executable",
    )

    # Response timing
    response_delay: float = Field(
        default=DEFAULT_RESPONSE_DELAY,
        gt=0,
        description="Seconds to wait after 'play' before reading output",
    )
    poll_interval: float = Field(
        default=DEFAULT_POLL_INTERVAL,
        gt=0,
        description="Seconds between re-reads while polling for a response",
    )
    max_wait: float | None = Field(
        default=None,
        gt=0,
        description="Overall seconds to keep polling after 'play' (unset: read once)",
    )

    # Output parsing
    string_aware_extraction: bool = Field(
        default=True,
        description="Ignore braces that appear inside JSON string values",
    )

    # Shutdown
    terminate_timeout: float = Field(
        default=DEFAULT_TERMINATE_TIMEOUT,
        gt=0,
        description="Seconds to wait for the worker to exit before killing it",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @model_validator(mode="after")
    def validate_max_wait(self) -> BridgeConfig:
        """Validate that the polling budget covers the initial delay."""
        if self.max_wait is not None and self.max_wait < self.response_delay:
            raise ValueError(
                f"max_wait ({self.max_wait}) must not be shorter than "
                f"response_delay ({self.response_delay})"
            )
        return self

    def resolve_executable(self) -> Path:
        """Resolve the executable against the working directory.

        Absolute paths are returned unchanged.

        Returns:
            The path the worker is launched from
        """
        path = Path(self.executable).expanduser()
        if path.is_absolute():
            return path
        base = self.working_dir if self.working_dir is not None else Path.cwd()
        return base / path

    def setup_logging(self) -> None:
        """Configure logging based on config settings.

        Logs go to stderr so stdout stays free for command output.
        """
        logging.basicConfig(
            level=getattr(logging, self.log_level, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            stream=sys.stderr,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for logging/debugging.

        Returns:
            Dictionary of all config values
        """
        return {
            "executable": self.executable,
            "working_dir": str(self.working_dir) if self.working_dir else None,
            "worker_args": list(self.worker_args),
            "response_delay": self.response_delay,
            "poll_interval": self.poll_interval,
            "max_wait": self.max_wait,
            "string_aware_extraction": self.string_aware_extraction,
            "terminate_timeout": self.terminate_timeout,
            "log_level": self.log_level,
        }


# Module-level singleton instance
_config_instance: BridgeConfig | None = None


def get_config() -> BridgeConfig:
    """Get the singleton configuration instance.

    Creates the config on first call, caching it for subsequent calls.
    The config is loaded from environment variables and optional .env file.

    Returns:
        The BridgeConfig singleton instance

    Note:
        For testing, use set_config() to inject a test configuration,
        or call reset_config() to force reloading from environment.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = BridgeConfig()
    return _config_instance


def set_config(config: BridgeConfig) -> None:
    """Set the configuration instance (primarily for testing).

    Args:
        config: BridgeConfig instance to use as the singleton
    """
    global _config_instance
    _config_instance = config


def reset_config() -> None:
    """Reset the configuration singleton.

    Forces the next get_config() call to reload from environment.
    """
    global _config_instance
    _config_instance = None
