"""Centralized application configuration via environment variables."""

from enum import StrEnum
from functools import lru_cache

from pydantic import SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class RateLimitBackend(StrEnum):
    REDIS = "redis"
    MEMORY = "memory"


# First path segments that never name a store.
DEFAULT_RESERVED_ROUTES: list[str] = [
    "api",
    "_next",
    "static",
    "favicon.ico",
    "robots.txt",
    "sitemap.xml",
    "onboarding",
    "start-free",
    "login",
    "signup",
    "register",
    "admin",
    "auth",
    "health",
    "docs",
    "redoc",
    "openapi.json",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Secrets use SecretStr to prevent accidental logging.
    Database URL is assembled from individual components to match
    the official PostgreSQL Docker image environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App ---
    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "DEBUG"
    # --- CORS ---
    cors_allowed_origins: list[str] = []
    cors_allow_credentials: bool = False
    cors_allowed_methods: list[str] = ["GET", "POST", "HEAD"]
    cors_allowed_headers: list[str] = ["Content-Type", "Authorization"]

    # --- Tenant routing ---
    base_domain: str = "platform.example"
    # "www" is excluded separately; the base domain's own label is always reserved.
    reserved_subdomains: list[str] = ["api"]
    reserved_routes: list[str] = DEFAULT_RESERVED_ROUTES
    tenant_resolution_timeout: float = 2.0
    tenant_cache_ttl: int = 300

    # --- Rate limiting ---
    rate_limit_backend: RateLimitBackend = RateLimitBackend.REDIS
    counter_store_timeout: float = 0.5

    # --- PostgreSQL ---
    postgres_user: str = "storefront"
    postgres_password: SecretStr = SecretStr("secret")
    postgres_db: str = "storefront"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    # Extra shards beyond the primary database, as full SQLAlchemy URLs.
    shard_database_urls: list[str] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def database_url(self) -> str:
        """Assemble database URL from components.

        Uses psycopg v3 driver which supports both sync (create_engine)
        and async (create_async_engine) modes natively.
        """
        password = self.postgres_password.get_secret_value()
        return (
            f"postgresql+psycopg://{self.postgres_user}:{password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"

    # --- Sessions ---
    jwt_secret: SecretStr = SecretStr("change-me-in-production")
    jwt_algorithm: str = "HS256"
    session_ttl_seconds: int = 24 * 60 * 60
    session_cookie_name: str = "auth_token"

    # --- Convenience properties ---
    @property
    def shard_count(self) -> int:
        return 1 + len(self.shard_database_urls)

    @property
    def is_dev(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton.

    Usage::

        from storefront.config import get_settings
        settings = get_settings()

    Or for dependency injection in FastAPI::

        @app.get("/")
        def root(settings: Settings = Depends(get_settings)):
            ...
    """
    return Settings()


settings = get_settings()
