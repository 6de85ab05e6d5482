# backend/config.py
"""
Configuration management for the camera adapter
Loads settings from environment variables
"""

import logging

from pydantic_settings import BaseSettings


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Logging
    log_level: str = "INFO"
    log_format: str = LOG_FORMAT

    # Credentials (secret store lookups)
    credentials_retry_time: int = 120  # total seconds to keep retrying
    credentials_retry_wait: int = 1  # seconds between attempts

    # Camera Integration
    onvif_timeout_seconds: int = 10
    camera_http_timeout_seconds: int = 10
    camera_snapshot_timeout_seconds: int = 15

    # Bosch RCP polling
    bosch_poll_interval_seconds: float = 5.0
    bosch_collect_ms: int = 5000
    bosch_max_errors: int = 60

    # Axis VAPIX trigger stream
    axis_fps: int = 1
    axis_retry_delay_seconds: float = 5.0
    axis_max_errors: int = 60
    axis_stream_read_timeout_seconds: float = 30.0

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields in .env file


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings"""
    return settings


def configure_logging(config: Settings = None) -> None:
    """Apply log level and format from settings to the root logger"""
    config = config or settings
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=config.log_format,
    )
