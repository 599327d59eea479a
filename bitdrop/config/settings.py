"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

Mock modes enable local development without Supabase, Snowflake or FFmpeg.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like cors_origins), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "BitDrop API"
    api_version: str = "v1"

    # Authentication
    jwt_secret: str = Field(
        default="",
        description="Application signing secret. Checked first when verifying bearer tokens."
    )
    supabase_jwt_secret: str = Field(
        default="",
        description="Platform-issued signing secret. Checked after the application secret."
    )

    # Supabase Storage Configuration
    supabase_url: str = Field(
        default="",
        description="Supabase project URL, e.g. https://xyz.supabase.co"
    )
    supabase_service_role_key: str = Field(
        default="",
        description="Service role key used to authorize storage writes and deletes"
    )
    storage_bucket: str = Field(
        default="drops",
        description="Bucket holding both videos and thumbnails"
    )
    storage_timeout_seconds: float = Field(
        default=60.0,
        description="Per-request timeout for storage calls"
    )
    storage_mock_mode: bool = Field(
        default=False,
        description="Use in-memory mock instead of real Supabase storage."
    )

    # Snowflake Configuration
    snowflake_account: str = Field(
        default="",
        description="Snowflake account identifier"
    )
    snowflake_user: str = Field(
        default="",
        description="Snowflake service account username"
    )
    snowflake_password: str = Field(
        default="",
        description="Snowflake service account password"
    )
    snowflake_private_key_path: Optional[str] = Field(
        default=None,
        description="Path to RSA private key file for key-pair authentication"
    )
    snowflake_database: str = Field(
        default="BITDROP",
        description="Snowflake database name"
    )
    snowflake_schema: str = Field(
        default="PUBLIC",
        description="Snowflake schema name"
    )
    snowflake_warehouse: str = Field(
        default="COMPUTE_WH",
        description="Snowflake warehouse for query execution"
    )
    snowflake_role: Optional[str] = Field(
        default=None,
        description="Snowflake role to use (optional)"
    )
    snowflake_pool_size: int = Field(
        default=5,
        description="Maximum number of idle connections kept in the pool"
    )
    snowflake_mock_mode: bool = Field(
        default=False,
        description="Use in-memory mock instead of real Snowflake connection. Enables local dev without DB."
    )

    # Frame extraction
    ffmpeg_path: str = Field(
        default="ffmpeg",
        description="Path to the ffmpeg binary"
    )
    ffmpeg_timeout_seconds: Optional[float] = Field(
        default=60.0,
        description="Hard limit for a single ffmpeg run. The ingest deadline still applies."
    )
    preview_offset_seconds: float = Field(
        default=1.0,
        description="Offset into the video where the preview frame is taken"
    )
    frame_extractor_mock_mode: bool = Field(
        default=False,
        description="Use a placeholder extractor instead of spawning FFmpeg."
    )

    # Ingestion behavior
    max_upload_size_mb: int = Field(
        default=100,
        description="Maximum upload size in MB."
    )
    ingest_timeout_seconds: float = Field(
        default=120.0,
        description="Deadline for staging, extraction, uploads and persistence of one drop."
    )
    compensate_orphaned_artifacts: bool = Field(
        default=True,
        description="Delete already-uploaded artifacts when a later ingestion stage fails."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """
        Signing secrets in verification order.

        Application secret first, then the platform secret. Both stay valid
        so tokens from either issuer keep working during a migration.
        """
        return [s for s in (self.jwt_secret, self.supabase_jwt_secret) if s]

    @property
    def storage_endpoint(self) -> str:
        """Base URL of the storage REST API."""
        return f"{self.supabase_url.rstrip('/')}/storage/v1"

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on whether we're in mock mode.
        """
        missing = []

        if not self.jwt_secrets:
            missing.append("JWT_SECRET or SUPABASE_JWT_SECRET")

        if not self.storage_mock_mode:
            if not self.supabase_url:
                missing.append("SUPABASE_URL")
            if not self.supabase_service_role_key:
                missing.append("SUPABASE_SERVICE_ROLE_KEY")

        if not self.snowflake_mock_mode:
            if not self.snowflake_account:
                missing.append("SNOWFLAKE_ACCOUNT")
            if not self.snowflake_user:
                missing.append("SNOWFLAKE_USER")
            if not self.snowflake_password and not self.snowflake_private_key_path:
                missing.append("SNOWFLAKE_PASSWORD or SNOWFLAKE_PRIVATE_KEY_PATH")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once per process. For tests, call
    get_settings.cache_clear() to reset.
    """
    return Settings()
