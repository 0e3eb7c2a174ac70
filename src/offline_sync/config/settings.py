"""Application configuration settings."""

from typing import Optional, List
from pydantic import Field
from pydantic_settings import BaseSettings


class StoreSettings(BaseSettings):
    """Durable local store configuration."""

    url: str = Field(default="sqlite:///./data/offline_sync.db")
    namespace: str = Field(default="sync")

    class Config:
        env_prefix = "STORE_"


class RemoteSettings(BaseSettings):
    """Remote mutation API configuration."""

    base_url: str = Field(default="http://localhost:3001/api")
    api_token: Optional[str] = Field(default=None)
    timeout_seconds: float = Field(default=30.0)
    detect_conflicts: bool = Field(default=True)

    class Config:
        env_prefix = "REMOTE_"


class ConnectivitySettings(BaseSettings):
    """Connectivity probe configuration."""

    probe_url: Optional[str] = Field(default=None)
    probe_interval_seconds: float = Field(default=10.0)
    probe_timeout_seconds: float = Field(default=5.0)
    debounce_seconds: float = Field(default=1.0)

    class Config:
        env_prefix = "CONNECTIVITY_"


class SyncSettings(BaseSettings):
    """Sync engine configuration."""

    enabled: bool = Field(default=True)
    max_retries: int = Field(default=5)
    retry_delays_seconds: List[float] = Field(default_factory=lambda: [1.0, 5.0, 15.0, 60.0, 300.0])
    auto_sync_interval_seconds: float = Field(default=30.0)
    fail_fast_on_permanent: bool = Field(default=False)
    conflict_strategy: str = Field(default="latest_wins")
    config_file: Optional[str] = Field(default=None)

    class Config:
        env_prefix = "SYNC_"


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    format: str = Field(default="json")
    file_path: Optional[str] = Field(default="./logs/offline_sync.log")

    class Config:
        env_prefix = "LOG_"


class ServerSettings(BaseSettings):
    """Control surface HTTP server configuration."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)

    class Config:
        env_prefix = "SERVER_"


class AppSettings(BaseSettings):
    """Main application settings."""

    name: str = Field(default="Offline Sync Engine")
    version: str = Field(default="1.0.0")
    environment: str = Field(default="development")

    # Sub-settings
    store: StoreSettings = StoreSettings()
    remote: RemoteSettings = RemoteSettings()
    connectivity: ConnectivitySettings = ConnectivitySettings()
    sync: SyncSettings = SyncSettings()
    logging: LoggingSettings = LoggingSettings()
    server: ServerSettings = ServerSettings()

    class Config:
        env_prefix = "APP_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "allow"


# Global settings instance
settings = AppSettings()


def get_settings() -> AppSettings:
    """Get application settings."""
    return settings
