"""
Configuration settings for the private flow lookup.

Uses Pydantic Settings to load environment variables for the database
connection, the schema holding the `blocks` and `unique_mempool` relations,
logging, and lookup defaults.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from private_flow.queries import is_identifier


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("ethereum", alias="DB_NAME")
    db_schema: str = Field("ethereum", alias="DB_SCHEMA")
    db_statement_timeout_ms: int = Field(0, ge=0, alias="DB_STATEMENT_TIMEOUT_MS")
    db_pool_min_size: int = Field(1, ge=0, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(10, ge=1, alias="DB_POOL_MAX_SIZE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Lookup defaults
    default_lookup: str = Field("server_side", alias="DEFAULT_LOOKUP")
    mempool_cache_ttl_seconds: float = Field(30.0, ge=0, alias="MEMPOOL_CACHE_TTL_SECONDS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("db_schema")
    @classmethod
    def _schema_is_identifier(cls, value: str) -> str:
        if not is_identifier(value):
            raise ValueError(f"DB_SCHEMA must be a plain SQL identifier, got {value!r}")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
