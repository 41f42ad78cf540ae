"""Public API for shared Synap configuration utilities."""

from .loader import load_config, load_settings
from .models import (
    DEFAULT_CONFIG_PATH,
    ComponentsSettings,
    LoggingSettings,
    ObservabilitySettings,
    StorageSettings,
    SynapSettings,
    resolve_component_settings,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ComponentsSettings",
    "LoggingSettings",
    "ObservabilitySettings",
    "StorageSettings",
    "SynapSettings",
    "load_config",
    "load_settings",
    "resolve_component_settings",
]
