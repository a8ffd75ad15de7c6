"""Application settings, read from the environment or a local .env file."""
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    env: str = Field(default="development", alias="APP_ENV")
    host: str = Field(default="0.0.0.0", alias="APP_HOST")
    port: int = Field(default=8000, alias="APP_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # SQLite locally, PostgreSQL in production
    database_url: str = Field(default="sqlite:///./worksign.db", alias="DATABASE_URL")

    # Base URL of the page field officers open to review and sign
    public_base_url: str = Field(default="http://localhost:3000", alias="PUBLIC_BASE_URL")
    link_ttl_minutes: int = Field(default=120, alias="LINK_TTL_MINUTES", gt=0)

    jwt_secret: str = Field(default="change-me", alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")

    @field_validator("database_url")
    @classmethod
    def _fix_postgres_scheme(cls, value: str) -> str:
        # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
        if value.startswith("postgres://"):
            return value.replace("postgres://", "postgresql://", 1)
        return value


@lru_cache
def get_settings() -> AppConfig:
    return AppConfig()
