"""Runtime configuration using pydantic-settings."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """qrforge configuration loaded from QRFORGE_* environment variables."""

    # Assets
    asset_root: str = "."
    http_timeout_s: float = 10.0
    max_asset_bytes: int = 5 * 1024 * 1024
    asset_cache_entries: int = 64

    # Rendering
    best_effort_logo: bool = False
    output_format: str = "PNG"

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None
    json_logs: bool = False

    model_config = SettingsConfigDict(
        env_prefix="QRFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("output_format", "log_level")
    @classmethod
    def upper(cls, value: str) -> str:
        return value.upper()

    @field_validator("asset_cache_entries", "max_asset_bytes")
    @classmethod
    def positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value


def get_settings() -> Settings:
    return Settings()
