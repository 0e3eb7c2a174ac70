"""Configuration package for the offline sync engine."""

from .settings import (
    StoreSettings,
    RemoteSettings,
    ConnectivitySettings,
    SyncSettings,
    LoggingSettings,
    ServerSettings,
    AppSettings,
    get_settings
)

from .schema import (
    SyncConfig,
    DEFAULT_ENTITY_ROUTES,
    DEFAULT_RETRY_DELAYS_SECONDS
)

from .loader import (
    ConfigLoader,
    ConfigurationError,
    load_config_from_env
)

__all__ = [
    # Environment settings
    "StoreSettings",
    "RemoteSettings",
    "ConnectivitySettings",
    "SyncSettings",
    "LoggingSettings",
    "ServerSettings",
    "AppSettings",
    "get_settings",

    # Sync policy
    "SyncConfig",
    "DEFAULT_ENTITY_ROUTES",
    "DEFAULT_RETRY_DELAYS_SECONDS",

    "ConfigLoader",
    "ConfigurationError",
    "load_config_from_env"
]
