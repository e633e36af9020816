"""
Tubely Configuration Management Module

This module provides configuration management for the Tubely upload service
using Pydantic Settings. It loads and validates all environment variables
required for:
- Application settings (name, environment, logging, public base URL)
- JWT validation for bearer credentials
- MongoDB connection and pooling for video records
- S3 object storage for published videos
- Local asset storage for thumbnails
- Upload size ceilings and temporary staging
- ffprobe/ffmpeg invocation and media-processing policies

All settings support environment variable overrides and .env file loading.
Settings instances are passed explicitly into component constructors; the
cached get_settings() is only consulted at the FastAPI dependency layer.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Reference ceilings for upload bodies
THUMBNAIL_UPLOAD_LIMIT_BYTES = 10 << 20
VIDEO_UPLOAD_LIMIT_BYTES = 1 << 30

PROBE_FAILURE_POLICIES = {"fail", "fallback"}


class Settings(BaseSettings):
    """
    Configuration settings for the Tubely upload service.

    Configuration Categories:
    - Application: name, environment, logging, bind address, public base URL
    - JWT: signing secret and accepted algorithm for bearer credentials
    - MongoDB: connection URI and pool sizes for the video record store
    - S3: bucket, region and credentials for published videos
    - Assets: local directory served under /assets for thumbnails
    - Upload: per-kind body ceilings and staging directory
    - Media: ffprobe/ffmpeg paths, subprocess timeout and failure policy

    Example usage:
        ```python
        from tubely.config import Settings

        settings = Settings()
        print(f"Publishing videos to: {settings.s3_bucket_name}")
        ```
    """

    # =========================================================================
    # Application Settings
    # =========================================================================

    app_name: str = Field(
        default="Tubely",
        description="Application name displayed in API documentation and logs",
    )

    app_env: str = Field(
        default="development",
        description="Application environment (development, staging, production, testing)",
    )

    debug: bool = Field(default=False, description="Enable FastAPI debug mode")

    log_level: str = Field(
        default="info", description="Logging level (debug, info, warning, error, critical)"
    )

    json_logs: bool = Field(
        default=True, description="Emit structured JSON logs instead of plain text"
    )

    host: str = Field(default="0.0.0.0", description="Host address for the API server to bind to")

    port: int = Field(default=8091, description="Port number for the API server", ge=1, le=65535)

    base_url: str = Field(
        default="http://localhost:8091",
        description="Public base URL used to build locally served asset URLs",
    )

    cors_origins: list[str] = Field(
        default=["http://localhost:8091"],
        description="List of allowed CORS origins for frontend access",
    )

    # =========================================================================
    # JWT Configuration
    # =========================================================================

    jwt_secret: str = Field(
        default="development-jwt-secret-change-in-production",
        description="Shared secret used to verify bearer JWT signatures",
        min_length=16,
    )

    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")

    jwt_issuer: str | None = Field(
        default=None,
        description="Required 'iss' claim; issuer is not checked when unset",
    )

    # =========================================================================
    # MongoDB Configuration
    # =========================================================================

    mongodb_uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI (e.g., mongodb://localhost:27017)",
    )

    mongodb_db_name: str = Field(default="tubely", description="MongoDB database name")

    mongodb_min_pool_size: int = Field(
        default=1, description="Minimum number of connections in MongoDB connection pool", ge=0
    )

    mongodb_max_pool_size: int = Field(
        default=50, description="Maximum number of connections in MongoDB connection pool", ge=1
    )

    # =========================================================================
    # S3 Storage Configuration
    # =========================================================================

    s3_bucket_name: str = Field(
        default="tubely-videos", description="S3 bucket that receives published videos"
    )

    s3_region: str = Field(default="us-east-1", description="AWS region of the S3 bucket")

    s3_endpoint_url: str | None = Field(
        default=None, description="S3-compatible endpoint URL (None for AWS S3)"
    )

    s3_access_key_id: str | None = Field(
        default=None,
        description="S3 access key ID; the default boto3 credential chain is used when unset",
    )

    s3_secret_access_key: str | None = Field(
        default=None, description="S3 secret access key"
    )

    # =========================================================================
    # Local Asset Storage
    # =========================================================================

    assets_root: Path = Field(
        default=Path("assets"),
        description="Directory holding locally published thumbnails, served under /assets",
    )

    # =========================================================================
    # Upload Settings
    # =========================================================================

    max_thumbnail_upload_bytes: int = Field(
        default=THUMBNAIL_UPLOAD_LIMIT_BYTES,
        description="Maximum request body size for thumbnail uploads (10 MiB)",
        ge=1,
    )

    max_video_upload_bytes: int = Field(
        default=VIDEO_UPLOAD_LIMIT_BYTES,
        description="Maximum request body size for video uploads (1 GiB)",
        ge=1,
    )

    staging_dir: Path | None = Field(
        default=None,
        description="Parent directory for per-request staging directories (system temp if unset)",
    )

    verify_content_signature: bool = Field(
        default=True,
        description="Sniff staged bytes with libmagic and reject mismatching declared types",
    )

    # =========================================================================
    # Media Processing Settings
    # =========================================================================

    ffprobe_path: str = Field(default="ffprobe", description="Path to the ffprobe binary")

    ffmpeg_path: str = Field(default="ffmpeg", description="Path to the ffmpeg binary")

    media_command_timeout_seconds: float = Field(
        default=300.0,
        description="Upper bound on a single ffprobe/ffmpeg invocation",
        gt=0,
    )

    probe_failure_policy: str = Field(
        default="fail",
        description="On ffprobe failure: 'fail' the request or 'fallback' to the 'other' bucket",
    )

    delete_superseded_assets: bool = Field(
        default=False,
        description="Delete the previously referenced blob after a successful commit",
    )

    # =========================================================================
    # Model Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"debug", "info", "warning", "error", "critical"}
        normalized = v.lower()
        if normalized not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {', '.join(valid_levels)}")
        return normalized

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate that app_env is a valid environment name."""
        valid_envs = {"development", "staging", "production", "testing"}
        normalized = v.lower()
        if normalized not in valid_envs:
            raise ValueError(f"Invalid app_env '{v}'. Must be one of: {', '.join(valid_envs)}")
        return normalized

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """Only symmetric HMAC algorithms can be verified with a shared secret."""
        valid_algorithms = {"HS256", "HS384", "HS512"}
        if v.upper() not in valid_algorithms:
            raise ValueError(
                f"Invalid jwt_algorithm '{v}'. Must be one of: {', '.join(valid_algorithms)}"
            )
        return v.upper()

    @field_validator("probe_failure_policy")
    @classmethod
    def validate_probe_failure_policy(cls, v: str) -> str:
        normalized = v.lower()
        if normalized not in PROBE_FAILURE_POLICIES:
            raise ValueError(
                f"Invalid probe_failure_policy '{v}'. "
                f"Must be one of: {', '.join(sorted(PROBE_FAILURE_POLICIES))}"
            )
        return normalized

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string if provided as string."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def falls_back_on_probe_failure(self) -> bool:
        """True when a failed probe classifies the video as 'other' instead of failing."""
        return self.probe_failure_policy == "fallback"

    @property
    def s3_public_base_url(self) -> str:
        """Virtual-hosted style base URL of the video bucket."""
        return f"https://{self.s3_bucket_name}.s3.{self.s3_region}.amazonaws.com"


@lru_cache
def get_settings() -> Settings:
    """
    Get the global Settings instance.

    The @lru_cache decorator ensures that the Settings object is created only
    once on first call; subsequent calls return the cached instance without
    re-reading environment variables or .env files.

    Returns:
        Settings: The global configuration instance.
    """
    return Settings()
