"""Centralized application configuration via environment variables."""

from enum import StrEnum
from functools import lru_cache

from pydantic import Field, SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from poam_tracker.tenancy.tiers import Tier


class Environment(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class QuotaBackend(StrEnum):
    """Where quota counters and cached responses live."""

    REDIS = "redis"
    MEMORY = "memory"


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
    cors_allowed_methods: list[str] = ["GET", "POST"]
    cors_allowed_headers: list[str] = ["Content-Type", "X-Tenant-Id", "X-User-Id"]

    # --- PostgreSQL ---
    postgres_user: str = "poam"
    postgres_password: SecretStr = SecretStr("secret")
    postgres_db: str = "poam_tracker"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

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

    # --- Tenant gateway ---
    # Every path under the prefix is tenant-scoped unless listed as exempt.
    tenant_path_prefix: str = "/api/v1/"
    gateway_exempt_paths: list[str] = ["/api/v1/webhooks/organizations"]
    quota_backend: QuotaBackend = QuotaBackend.REDIS
    quota_store_timeout: float = Field(default=0.5, gt=0)
    default_tier: Tier = Tier.FREE
    tier_lookup_enabled: bool = True
    tier_cache_ttl: int = Field(default=60, gt=0)
    poam_cache_ttl: int = Field(default=30, gt=0)

    # --- Provisioning webhook ---
    webhook_secret: SecretStr | None = None

    # --- Worker ---
    worker_max_jobs: int = 4
    worker_job_timeout: int = 300
    worker_max_tries: int = 3

    # --- Convenience properties ---
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

        from poam_tracker.config import get_settings
        settings = get_settings()

    Or for dependency injection in FastAPI::

        @app.get("/")
        def root(settings: Settings = Depends(get_settings)):
            ...
    """
    return Settings()


settings = get_settings()
