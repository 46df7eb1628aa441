"""Configuration management for cloudwait."""

from .models import (
    PollingConfig,
    ProjectConfig,
    ResourceConfig,
    SUPPORTED_RESOURCE_TYPES,
)
from .parser import Config, ConfigValidationError

__all__ = [
    "PollingConfig",
    "ProjectConfig",
    "ResourceConfig",
    "SUPPORTED_RESOURCE_TYPES",
    "Config",
    "ConfigValidationError",
]
