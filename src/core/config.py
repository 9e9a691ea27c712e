"""Application configuration using pydantic-settings."""
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

INSECURE_JWT_SECRET = "dev-insecure-secret"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str
    db_pool_size: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")

    # Bearer tokens
    jwt_secret: str = Field(default=INSECURE_JWT_SECRET, validation_alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
    jwt_expires_minutes: int = Field(default=15, ge=1, validation_alias="JWT_EXPIRES_MINUTES")

    # Password hashing work factor (bcrypt accepts 4-31)
    bcrypt_rounds: int = Field(default=10, ge=4, le=31, validation_alias="BCRYPT_ROUNDS")

    # Email verification
    email_verification_expires_hours: int = Field(
        default=24, ge=1, validation_alias="EMAIL_VERIFICATION_EXPIRES_HOURS",
    )

    # URLs used for redirects and links in verification emails
    frontend_base_url: str = Field(
        default="http://localhost:5173",
        validation_alias="FRONTEND_BASE_URL",
    )
    frontend_verify_url: str = Field(default="", validation_alias="FRONTEND_VERIFY_URL")
    backend_base_url: str = Field(default="", validation_alias="BACKEND_BASE_URL")
    oauth_callback_url: str = Field(
        default="http://localhost:4000",
        validation_alias="OAUTH_CALLBACK_URL",
    )

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:5173",
        validation_alias="CORS_ORIGINS",
    )

    # Proxies whose X-Forwarded-For header is trusted for client address resolution
    trusted_proxies_str: str = Field(default="", validation_alias="TRUSTED_PROXIES")

    # Redis - for rate limiting and OAuth handshake state
    redis_url: str = Field(default="redis://localhost:6379", validation_alias="REDIS_URL")
    redis_enabled: bool = Field(default=True, validation_alias="REDIS_ENABLED")
    redis_pool_size: int = Field(default=20, validation_alias="REDIS_POOL_SIZE")

    # OAuth providers - a provider is enabled only when both values are set
    google_client_id: str = Field(default="", validation_alias="GOOGLE_CLIENT_ID")
    google_client_secret: str = Field(default="", validation_alias="GOOGLE_CLIENT_SECRET")
    github_client_id: str = Field(default="", validation_alias="GITHUB_CLIENT_ID")
    github_client_secret: str = Field(default="", validation_alias="GITHUB_CLIENT_SECRET")

    # SMTP - emails are only logged when smtp_host is empty
    smtp_host: str = Field(default="", validation_alias="SMTP_HOST")
    smtp_port: int = Field(default=587, validation_alias="SMTP_PORT")
    smtp_user: str = Field(default="", validation_alias="SMTP_USER")
    smtp_pass: str = Field(default="", validation_alias="SMTP_PASS")
    smtp_secure: bool = Field(default=False, validation_alias="SMTP_SECURE")
    email_from: str = Field(default="no-reply@example.com", validation_alias="EMAIL_FROM")
    email_send_timeout_seconds: float = Field(
        default=10.0, gt=0, validation_alias="EMAIL_SEND_TIMEOUT_SECONDS",
    )

    @model_validator(mode="after")
    def validate_jwt_secret(self) -> "Settings":
        """
        Prevent the built-in development JWT secret from being used with a remote database.

        Anyone who knows the default secret can mint bearer tokens, so it is only
        accepted while the database is on the local machine.
        """
        if self.jwt_secret != INSECURE_JWT_SECRET:
            return self

        try:
            hostname = urlparse(self.database_url).hostname or ""
        except ValueError:
            hostname = ""

        local_hosts = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}
        if hostname.lower() not in local_hosts:
            raise ValueError(
                f"JWT_SECRET must be set when using a non-local database. "
                f"Database host '{hostname}' appears to be a production database.",
            )
        return self

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        return _split_csv(self.cors_origins_str)

    @property
    def trusted_proxies(self) -> set[str]:
        """Parse comma-separated trusted proxy addresses into a set."""
        return set(_split_csv(self.trusted_proxies_str))

    @property
    def backend_base(self) -> str:
        """Public base URL of this API, without trailing slash."""
        return (self.backend_base_url or self.oauth_callback_url).rstrip("/")

    @property
    def frontend_base(self) -> str:
        """Frontend base URL without trailing slash."""
        return self.frontend_base_url.rstrip("/")


def _split_csv(value: str) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
