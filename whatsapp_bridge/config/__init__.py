"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    BridgeConfig,
    BrowserConfig,
    DedupConfig,
    EventTypesConfig,
    IgnoreRule,
    NatsConfig,
    PollingConfig,
    StatsConfig,
)

__all__ = [
    "BridgeConfig",
    "BrowserConfig",
    "ConfigLocator",
    "ConfigRepository",
    "DedupConfig",
    "EventTypesConfig",
    "IgnoreRule",
    "NatsConfig",
    "PollingConfig",
    "StatsConfig",
]
