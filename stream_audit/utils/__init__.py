"""Utilities package initialization."""
from .config import (
    GlobalSettings,
    SchedulerSettings,
    ServiceConfiguration,
    StreamSettings,
    ensure_runtime_configuration,
    get_service_configuration,
    get_settings,
    load_yaml_config,
)
from .logging import log_store_call, setup_logger

__all__ = [
    "GlobalSettings",
    "SchedulerSettings",
    "ServiceConfiguration",
    "StreamSettings",
    "ensure_runtime_configuration",
    "get_settings",
    "get_service_configuration",
    "load_yaml_config",
    "log_store_call",
    "setup_logger",
]
