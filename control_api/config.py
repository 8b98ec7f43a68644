"""Configuration management for the control API."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings

from stream_core.config import PROJECT_ROOT


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Multi-Stream Control API"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server
    host: str = "127.0.0.1"
    port: int = 8082

    # Persisted destination list
    destinations_path: Path = PROJECT_ROOT / "config" / "destinations.json"

    # Logging
    log_level: str = "INFO"
    log_path: Optional[Path] = None
    log_file_max_bytes: int = 10 * 1024 * 1024  # 10 MB
    log_file_backup_count: int = 5

    class Config:
        """Pydantic config."""

        env_prefix = "CONTROL_"
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()
