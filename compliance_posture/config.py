"""
Configuration management for the Compliance Posture engine.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Compliance Posture Engine")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)

    # Database
    database_url: str = Field(default="sqlite:///./compliance_posture.db")

    # Evidence storage
    object_store_uri: str = Field(
        default="file://./evidence-store",
        description="Base URI for evidence binaries (file:// supported).",
    )
    max_evidence_bytes: int = Field(default=25 * 1024 * 1024, ge=1)

    # Policy matching
    suggestion_candidate_multiplier: int = Field(
        default=3,
        ge=1,
        description="How many more neighbours than requested to ask the vector index for.",
    )
    default_suggestion_k: int = Field(default=5, ge=1)
    default_min_similarity: float = Field(default=0.3, ge=0.0, le=1.0)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
