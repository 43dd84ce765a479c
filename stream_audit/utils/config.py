"""Configuration loader and settings helpers for StreamAudit."""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic import (
    ValidationError as PydanticValidationError,
)
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def load_yaml_config(config_path: str | Path) -> dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary

    Raises:
        ConfigurationError: If file not found or invalid YAML
    """
    try:
        with open(config_path) as f:
            config = yaml.safe_load(f)
            return config if config else {}
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")


class SchedulerSettings(BaseModel):
    """Timing and shape of the synthetic traffic driver."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    insert_min_seconds: float = Field(default=30.0, gt=0)
    insert_max_seconds: float = Field(default=50.0, gt=0)
    update_min_seconds: float = Field(default=15.0, gt=0)
    update_max_seconds: float = Field(default=30.0, gt=0)
    update_page_size: int = Field(default=50, ge=1)
    item_probability: float = Field(default=0.0, ge=0, le=1)
    max_items_per_batch: int = Field(default=3, ge=1)

    @model_validator(mode="after")
    def _check_ranges(self) -> "SchedulerSettings":
        if self.insert_min_seconds > self.insert_max_seconds:
            raise ValueError("insert_min_seconds must not exceed insert_max_seconds")
        if self.update_min_seconds > self.update_max_seconds:
            raise ValueError("update_min_seconds must not exceed update_max_seconds")
        return self


class StreamSettings(BaseModel):
    """Push intervals for the server-sent event endpoints."""

    model_config = ConfigDict(extra="forbid")

    queue_interval_seconds: float = Field(default=5.0, gt=0)
    queue_stats_interval_seconds: float = Field(default=10.0, gt=0)
    audit_interval_seconds: float = Field(default=10.0, gt=0)
    metrics_interval_seconds: float = Field(default=10.0, gt=0)


class ServiceConfiguration(BaseModel):
    """Validated runtime configuration merged from base and profile templates."""

    version: int = Field(default=1, ge=1)
    environment: str = "development"
    required_env: list[str] = Field(default_factory=list)
    required_stores: list[str] = Field(default_factory=list)

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, value: str) -> str:
        return value.lower()

    @field_validator("required_stores")
    @classmethod
    def _check_stores(cls, value: list[str]) -> list[str]:
        known = {"redis", "cassandra", "clickhouse"}
        unknown = sorted(set(value) - known)
        if unknown:
            raise ValueError(f"Unknown stores in required_stores: {', '.join(unknown)}")
        return value


class GlobalSettings(BaseSettings):
    """Global application settings sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STREAM_AUDIT_",
        env_nested_delimiter="__",
        env_file=(".env", ".env.local", ".env.docker"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    config_profile: str | None = None
    log_level: str = "INFO"
    config_dir: Path = Path("config")
    queue_mode: Literal["durable", "cache"] = "durable"

    redis_url: str = "redis://localhost:6379/0"
    cassandra_hosts: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["localhost"])
    cassandra_port: int = Field(default=9042, ge=1)
    cassandra_keyspace: str = "paydash"
    cassandra_local_dc: str = "datacenter1"
    cassandra_create_schema: bool = False
    clickhouse_url: str | None = "http://localhost:8123"
    clickhouse_database: str = "default"

    store_timeout_seconds: float = Field(default=3.0, gt=0)
    startup_connect_attempts: int = Field(default=3, ge=1)
    startup_connect_backoff_seconds: float = Field(default=1.0, ge=0)

    durable_fetch_limit: int = Field(default=1000, ge=1)
    overlay_fetch_limit: int = Field(default=100, ge=1)
    stats_scan_limit: int = Field(default=1000, ge=1)
    audit_recent_window: int = Field(default=1000, ge=1)

    streams: StreamSettings = StreamSettings()
    scheduler: SchedulerSettings = SchedulerSettings()
    cors_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        """Ensure log level values are uppercase for logging config."""

        return value.upper()

    @field_validator("cassandra_hosts", "cors_origins", mode="before")
    @classmethod
    def _parse_csv_list(cls, value: Any) -> list[str]:
        """Support comma-separated strings or iterables for list settings."""

        if value is None:
            return []
        if isinstance(value, str):
            items = [item.strip() for item in value.split(",")]
            return [item for item in items if item]
        if isinstance(value, list | tuple | set):
            return [str(item) for item in value if str(item).strip()]
        raise ValueError("value must be a comma-separated string or iterable of strings")

    @field_validator("config_dir", mode="before")
    @classmethod
    def _expand_paths(cls, value: Any) -> Any:
        """Allow string paths and expand user markers."""

        if isinstance(value, Path):
            return value
        if isinstance(value, str):
            return Path(value).expanduser()
        return value

    @field_validator("config_profile", mode="before")
    @classmethod
    def _normalize_config_profile(cls, value: Any) -> Any:
        if value is None:
            return value
        if not isinstance(value, str) or not value.strip():
            raise ValueError("config_profile must be a non-empty string if provided")
        return value.strip().lower()

    @property
    def durable_enabled(self) -> bool:
        """True when Cassandra backs the queue view and the audit trail."""

        return self.queue_mode == "durable"


def _deep_merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries without mutating the inputs."""

    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


@lru_cache(maxsize=8)
def _load_service_configuration_cached(config_dir: str, profile: str) -> ServiceConfiguration:
    """Load and cache the service configuration for a given profile."""

    directory = Path(config_dir)
    base_path = directory / "settings.base.yaml"
    if not base_path.exists():
        raise ConfigurationError(
            f"Missing base configuration template at '{base_path}'. "
            "Create this file to define shared defaults."
        )

    base_config = load_yaml_config(base_path)

    profile_path = directory / f"settings.{profile}.yaml"
    profile_config: dict[str, Any] = {}
    if profile_path.exists():
        profile_config = load_yaml_config(profile_path)
    else:
        logger.debug("No configuration override found for profile '%s'", profile)

    merged = _deep_merge_dicts(base_config, profile_config)
    merged.setdefault("environment", profile)

    try:
        return ServiceConfiguration.model_validate(merged)
    except PydanticValidationError as exc:
        raise ConfigurationError(
            "Invalid configuration template for profile "
            f"'{profile}': {exc}"
        ) from exc


def get_service_configuration(
    settings: "GlobalSettings | None" = None,
    *,
    reload: bool = False,
) -> ServiceConfiguration:
    """Return the merged service configuration for the active profile."""

    if settings is None:
        settings = get_settings()

    profile = settings.config_profile or settings.environment

    if reload:
        _load_service_configuration_cached.cache_clear()

    return _load_service_configuration_cached(str(settings.config_dir), profile.lower())


def ensure_runtime_configuration(settings: GlobalSettings | None = None) -> GlobalSettings:
    """Validate configuration templates and ensure required env vars are present."""

    settings = settings or get_settings()

    service_config = get_service_configuration(settings=settings, reload=True)

    if "cassandra" in service_config.required_stores and not settings.durable_enabled:
        raise ConfigurationError(
            f"Profile '{service_config.environment}' requires Cassandra but "
            "STREAM_AUDIT_QUEUE_MODE is 'cache'"
        )

    missing = sorted(var for var in set(service_config.required_env) if not os.environ.get(var))

    if missing:
        joined = ", ".join(missing)
        raise ConfigurationError(
            "Missing required environment variables: "
            f"{joined}. Configure them via configuration templates or .env files."
        )

    return settings


@lru_cache(maxsize=1)
def _get_settings_cached() -> GlobalSettings:
    return GlobalSettings()


def get_settings(*, reload: bool = False) -> GlobalSettings:
    """Return cached settings, optionally forcing a reload."""

    if reload:
        _get_settings_cached.cache_clear()
    return _get_settings_cached()

