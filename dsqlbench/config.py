from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from dsqlbench.db.retry import RetryPolicy

ENV_PATH = Path(__file__).resolve().parent.parent / ".env"

DEFAULT_REGION = "us-east-1"


def region_from_host(host: str | None) -> str | None:
    """Region embedded in a DSQL endpoint, e.g. abc123.dsql.us-east-1.on.aws -> us-east-1"""
    parts = (host or "").split(".")
    if len(parts) > 2 and parts[1] == "dsql":
        return parts[2]
    return None


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    LOG_LEVEL: str = "INFO"

    # Cluster connection settings
    DB_HOST: str | None = None
    DB_PORT: int = 5432
    DB_USER: str = "admin"
    DB_NAME: str = "postgres"
    AWS_REGION: str | None = None

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 5
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 300.0  # 5 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # DSQL closes connections after 1 hour

    # Retry policy applied around every statement
    DB_RETRY_MAX_ATTEMPTS: int = 3
    DB_RETRY_BACKOFF_SECONDS: float = 0.5

    # Stress test defaults
    STRESS_DEFAULT_USERS: int = 100
    STRESS_DEFAULT_CONCURRENCY: int = 10

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def db_region(self) -> str:
        """
        Region used to sign auth tokens.

        Falls back to the region embedded in DB_HOST, then us-east-1.
        """
        return self.AWS_REGION or region_from_host(self.DB_HOST) or DEFAULT_REGION

    def is_admin_user(self) -> bool:
        """The admin role needs the admin flavour of the auth token."""
        return self.DB_USER.lower() == "admin"

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update({"timeout": min(self.DB_POOL_TIMEOUT, 15.0)})

        return config

    def get_retry_policy(self) -> RetryPolicy:
        """Build the statement retry policy from settings."""
        return RetryPolicy(
            max_attempts=self.DB_RETRY_MAX_ATTEMPTS,
            backoff=self.DB_RETRY_BACKOFF_SECONDS,
        )


settings = Settings()
