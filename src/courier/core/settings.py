"""Application settings and configuration.

This module defines all configuration options for the Courier relay.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Courier", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database configuration
    database_url: str = Field(default="sqlite:///./courier.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # JWT authentication settings
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Message constraints
    message_max_length: int = Field(default=4000, alias="MESSAGE_MAX_LENGTH")
    user_id_pattern: str = Field(
        default=r"^[A-Za-z0-9_-]{1,64}$",
        alias="USER_ID_PATTERN",
    )

    # History and inbox paging
    history_page_size: int = Field(default=50, alias="HISTORY_PAGE_SIZE")
    history_max_page_size: int = Field(default=200, alias="HISTORY_MAX_PAGE_SIZE")
    recent_conversations_limit: int = Field(default=20, alias="RECENT_CONVERSATIONS_LIMIT")

    # Realtime gateway timeouts (seconds)
    auth_timeout_seconds: float = Field(default=10.0, alias="AUTH_TIMEOUT_SECONDS")
    append_timeout_seconds: float = Field(default=5.0, alias="APPEND_TIMEOUT_SECONDS")
    delivery_timeout_seconds: float = Field(default=5.0, alias="DELIVERY_TIMEOUT_SECONDS")

    # Fan-out behaviour
    echo_to_sender: bool = Field(default=True, alias="ECHO_TO_SENDER")
    registry_stripes: int = Field(default=64, alias="REGISTRY_STRIPES")

    # Cross-instance fan-out over Redis pub/sub (disabled when unset)
    relay_redis_url: str | None = Field(default=None, alias="RELAY_REDIS_URL")
    relay_channel_prefix: str = Field(default="courier:dm", alias="RELAY_CHANNEL_PREFIX")
    relay_instance_id: str = Field(default="courier-local", alias="RELAY_INSTANCE_ID")
    relay_retry_seconds: float = Field(default=2.0, alias="RELAY_RETRY_SECONDS")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="text", alias="LOG_FORMAT")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def relay_deliveries_channel(self) -> str:
        """Return the pub/sub channel used for cross-instance deliveries."""
        return f"{self.relay_channel_prefix}:deliveries"


settings = Settings()  # type: ignore[call-arg]
