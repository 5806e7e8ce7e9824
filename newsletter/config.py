from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import computed_field, field_validator
from functools import lru_cache
from pathlib import Path

# Get the project root (the directory holding pyproject.toml)
PROJECT_ROOT = Path(__file__).parent.parent


class Settings(BaseSettings):

    # Application
    app_env: str = "development"
    app_debug: bool = False
    log_level: str = "INFO"

    # PostgreSQL Configuration
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "newsletter"
    postgres_user: str = "postgres"
    postgres_password: str = "password"

    # SQLite (local development and tests)
    use_sqlite: bool = False
    sqlite_url: str = "sqlite+aiosqlite:///./data/newsletter.db"

    @computed_field
    @property
    def database_url(self) -> str:
        """Return the appropriate database URL based on configuration."""
        if self.use_sqlite:
            return self.sqlite_url
        return f"{self.database_url_without_db}/{self.postgres_db}"

    @computed_field
    @property
    def database_url_without_db(self) -> str:
        """Server URL without a database name, used to create test databases."""
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}"

    # API Server
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    # create_all on startup; production databases are migrated with Alembic instead
    init_db_on_startup: bool = True

    # Database pooling (PostgreSQL)
    db_pool_size: int = 10
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800
    db_pool_timeout: float = 10.0

    # Upper bound on one statement, including waits on row locks. Enforced by the
    # database: statement_timeout and lock_timeout on PostgreSQL, busy timeout on SQLite
    db_statement_timeout: float = 5.0

    @field_validator("db_statement_timeout", "db_pool_timeout")
    @classmethod
    def positive_timeout(cls, v):
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        return str(v).upper()

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


# Singleton instance for easy import
settings = get_settings()
