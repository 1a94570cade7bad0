"""Application settings and configuration.

This module defines all configuration options for the Roomcast chat service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_MEGABYTE = 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Roomcast", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Security and authentication
    secret_key: str = Field(default="change-me-jwt-secret", alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 30,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )
    login_password: str = Field(default="QWE123qwe", alias="LOGIN_PASSWORD")

    # Database configuration
    database_url: str = Field(default="sqlite:///./roomcast.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Message history and attachments
    max_attachment_mb: int = Field(default=25, alias="MAX_ATTACHMENT_MB")
    history_limit_default: int = Field(default=80, alias="HISTORY_LIMIT")
    history_limit_max: int = Field(default=200, alias="HISTORY_LIMIT_MAX")

    # Realtime fan-out coalescing window
    ws_flush_ms: int = Field(default=25, alias="WS_FLUSH_MS")

    # Admission control (requests per window, keyed per client)
    rate_limit_window_seconds: int = Field(default=60, alias="RATE_LIMIT_WINDOW_SECONDS")
    login_rate_limit: int = Field(default=40, alias="LOGIN_RATE_LIMIT")
    ai_rate_limit: int = Field(default=60, alias="AI_RATE_LIMIT")

    # AI provider connectors
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-5.1", alias="OPENAI_MODEL")
    openai_base_url: str = Field(default="https://api.openai.com", alias="OPENAI_BASE_URL")
    gemini_api_key: str | None = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.0-flash", alias="GEMINI_MODEL")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com",
        alias="GEMINI_BASE_URL",
    )
    ai_timeout_seconds: float = Field(default=60.0, alias="AI_TIMEOUT_SECONDS")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "DELETE", "OPTIONS"],
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
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def max_attachment_bytes(self) -> int:
        """Return the attachment size ceiling in bytes."""
        return max(0, self.max_attachment_mb) * _MEGABYTE

    @property
    def ws_flush_seconds(self) -> float:
        """Return the coalescing window in seconds."""
        return max(0, self.ws_flush_ms) / 1000.0


settings = Settings()
