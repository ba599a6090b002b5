# src/canvasflow/core/config.py
"""
Configuration schema and loading for canvasflow.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator


class DatabaseSettings(BaseModel):
    """Task state store connection configuration."""

    model_config = {"frozen": True}

    url: str = Field(
        default="sqlite:///./canvasflow.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")


class SchedulerSettings(BaseModel):
    """Execution scheduler configuration."""

    model_config = {"frozen": True}

    max_concurrency: int = Field(
        default=4,
        gt=0,
        description="Maximum node processors in flight per batch",
    )


class RecoverySettings(BaseModel):
    """Dangling batch recovery and batch ownership configuration."""

    model_config = {"frozen": True}

    on_startup: bool = Field(
        default=True,
        description="Resume dangling batches when the process starts",
    )
    heartbeat_interval_seconds: float = Field(
        default=10.0,
        gt=0,
        description="How often a driving process renews its batch claim",
    )
    stale_after_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Claim age after which another process may take the batch over",
    )

    @model_validator(mode="after")
    def validate_stale_after_heartbeat(self) -> "RecoverySettings":
        """A claim must outlive at least one heartbeat interval."""
        if self.stale_after_seconds < self.heartbeat_interval_seconds:
            raise ValueError(
                f"stale_after_seconds ({self.stale_after_seconds}) must be >= "
                f"heartbeat_interval_seconds ({self.heartbeat_interval_seconds})"
            )
        return self


class LoggingSettings(BaseModel):
    """Structured logging configuration."""

    model_config = {"frozen": True}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum log level",
    )
    json_output: bool = Field(
        default=False,
        description="Render log events as JSON lines instead of console text",
    )


class CanvasflowSettings(BaseModel):
    """Top-level canvasflow configuration.

    Every section has defaults, so an empty settings file is valid.
    """

    model_config = {"frozen": True}

    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings,
        description="Task state store connection",
    )
    scheduler: SchedulerSettings = Field(
        default_factory=SchedulerSettings,
        description="Execution scheduler configuration",
    )
    recovery: RecoverySettings = Field(
        default_factory=RecoverySettings,
        description="Crash recovery and batch claim configuration",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Structured logging configuration",
    )


def load_settings(config_path: Path) -> CanvasflowSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (CANVASFLOW_*) - highest priority
    2. Config file (settings.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: CANVASFLOW_SCHEDULER__MAX_CONCURRENCY for
    nested keys.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated CanvasflowSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="CANVASFLOW",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; Pydantic fields are lowercase
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {
        k.lower(): _lower_keys(v)
        for k, v in dynaconf_settings.as_dict().items()
        if k not in internal_keys
    }
    return CanvasflowSettings(**raw_config)


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    return value


def resolve_config(settings: CanvasflowSettings) -> dict[str, Any]:
    """Convert validated settings to a JSON-safe dict.

    Includes all settings, explicit and defaulted.

    Args:
        settings: Validated CanvasflowSettings instance

    Returns:
        Dict representation suitable for JSON serialization
    """
    return settings.model_dump(mode="json")
