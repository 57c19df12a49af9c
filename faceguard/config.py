"""Configuration management for the face access-control service."""

from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Ignore extra environment variables
    )

    # Server configuration
    port: int = 3001
    host: str = "0.0.0.0"
    cors_origins: str = "*"

    # Descriptor storage
    data_dir: str = "face-data"
    users_file: str = "users.json"

    # Face recognition settings
    recognition_threshold: float = 0.45
    descriptor_dimension: int = 128
    detection_model: str = "hog"
    upsample_times: int = 1
    num_jitters: int = 1

    # Trigger and request handling
    trigger_cooldown_ms: int = 3000
    request_timeout: float = 30.0

    # Gateway mode (forwards to a remote recognition backend)
    upstream_url: Optional[str] = None
    upstream_timeout: float = 30.0

    # Logging and observability
    log_level: str = "INFO"
    otlp_endpoint: Optional[str] = None
    enable_console_export: bool = False

    @property
    def users_path(self) -> Path:
        """Full path of the durable descriptor file."""
        return Path(self.data_dir) / self.users_file

    @property
    def allowed_origins(self) -> list:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @field_validator('recognition_threshold')
    @classmethod
    def validate_recognition_threshold(cls, v):
        if v <= 0.0:
            raise ValueError('RECOGNITION_THRESHOLD must be greater than 0.0')
        return v

    @field_validator('descriptor_dimension')
    @classmethod
    def validate_descriptor_dimension(cls, v):
        if v <= 0:
            raise ValueError('DESCRIPTOR_DIMENSION must be a positive integer')
        return v

    @field_validator('trigger_cooldown_ms')
    @classmethod
    def validate_trigger_cooldown(cls, v):
        if v < 0:
            raise ValueError('TRIGGER_COOLDOWN_MS cannot be negative')
        return v

    @field_validator('detection_model')
    @classmethod
    def validate_detection_model(cls, v):
        if v not in ("hog", "cnn"):
            raise ValueError('DETECTION_MODEL must be either "hog" or "cnn"')
        return v

    @field_validator('request_timeout', 'upstream_timeout')
    @classmethod
    def validate_timeouts(cls, v):
        if v <= 0:
            raise ValueError('Timeouts must be greater than 0 seconds')
        return v


# Global settings instance
settings = Settings()
